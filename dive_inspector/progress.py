"""In-memory inspection progress and its relay to subscribed WebSocket clients."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from shared.logger import get_logger

from .models import utc_now

logger = get_logger(__name__)


class InspectionStatus(str, Enum):
    """Milestones of an inspection."""

    STARTING = "starting"
    CHECKING = "checking"
    PULLING = "pulling"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {InspectionStatus.COMPLETE, InspectionStatus.ERROR, InspectionStatus.CANCELLED}


class Event(str, Enum):
    UPDATE = "inspection-update"
    COMPLETE = "inspection-complete"
    ERROR = "inspection-error"
    CANCELLED = "inspection-cancelled"


@dataclass
class InspectionProgress:
    """Progress record for one image."""

    image_name: str
    status: InspectionStatus = InspectionStatus.STARTING
    progress: float = 0.0
    message: str = "Initializing analysis..."
    error: Optional[str] = None
    started_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    expires_at: Optional[float] = None

    @property
    def finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_name": self.image_name,
            "status": self.status.value,
            "progress": round(self.progress, 1),
            "message": self.message,
            "error": self.error,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
        }


class ProgressTracker:
    """
    Map of image name to its latest progress record.

    Finished records are kept for ``retention`` seconds so clients can still
    poll the final state, then dropped on the next access.
    """

    def __init__(self, retention: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.retention = retention
        self._clock = clock
        self._records: Dict[str, InspectionProgress] = {}

    def start(self, image_name: str) -> InspectionProgress:
        record = InspectionProgress(image_name=image_name)
        self._records[image_name] = record
        return record

    def update(
        self,
        image_name: str,
        status: Optional[InspectionStatus] = None,
        progress: Optional[float] = None,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ) -> InspectionProgress:
        """Merge the given fields into the record, creating it if needed."""
        record = self._records.get(image_name)
        if record is None:
            record = self.start(image_name)

        if status is not None:
            record.status = InspectionStatus(status)
        if progress is not None:
            record.progress = max(0.0, min(float(progress), 100.0))
        if message is not None:
            record.message = message
        if error is not None:
            record.error = error
        record.updated_at = utc_now()

        if record.finished:
            record.expires_at = self._clock() + self.retention
        else:
            record.expires_at = None
        return record

    def get(self, image_name: str) -> Optional[InspectionProgress]:
        self.purge_expired()
        return self._records.get(image_name)

    def remove(self, image_name: str) -> Optional[InspectionProgress]:
        return self._records.pop(image_name, None)

    def active(self) -> List[InspectionProgress]:
        self.purge_expired()
        return list(self._records.values())

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            name for name, record in self._records.items()
            if record.expires_at is not None and record.expires_at <= now
        ]
        for name in expired:
            del self._records[name]
        return len(expired)

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._records)


class ProgressRelay:
    """
    Pushes progress events to at most one channel per image name.

    A channel is anything with an async ``send_json`` method, normally a
    FastAPI WebSocket. A later subscription for the same image replaces the
    earlier one. Channels that fail to receive are dropped.
    """

    def __init__(self, tracker: ProgressTracker):
        self.tracker = tracker
        self._channels: Dict[str, Any] = {}

    def subscribe(self, image_name: str, channel: Any) -> None:
        if image_name in self._channels and self._channels[image_name] is not channel:
            logger.debug(f"Replacing subscriber for {image_name}")
        self._channels[image_name] = channel
        logger.info(f"Subscribed to inspection updates for: {image_name}")

    def unsubscribe(self, channel: Any) -> List[str]:
        """Remove every subscription held by ``channel``."""
        names = [name for name, c in self._channels.items() if c is channel]
        for name in names:
            del self._channels[name]
        return names

    def subscriber(self, image_name: str) -> Optional[Any]:
        return self._channels.get(image_name)

    async def publish(self, image_name: str, event: Event, data: Dict[str, Any]) -> bool:
        """
        Send one event to the image's subscriber.

        Returns:
            True if a subscriber received it
        """
        channel = self._channels.get(image_name)
        if channel is None:
            return False

        try:
            await channel.send_json({"event": event.value, "data": {"image_name": image_name, **data}})
            return True
        except Exception as e:
            logger.warning(f"Dropping subscriber for {image_name}: {e}")
            if self._channels.get(image_name) is channel:
                del self._channels[image_name]
            return False

    async def update(self, image_name: str, **fields) -> InspectionProgress:
        """Record a progress update and forward it as an ``inspection-update`` event."""
        record = self.tracker.update(image_name, **fields)
        await self.publish(
            image_name,
            Event.UPDATE,
            {"status": record.status.value, "progress": round(record.progress, 1), "message": record.message},
        )
        return record
