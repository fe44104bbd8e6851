"""Inspection workflow: check the image, pull it if needed, run dive, report progress."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import docker

from shared.logger import get_logger

from .dive import ImageAnalyzer
from .docker_client import DockerClient
from .exceptions import DockerUnavailableError, InspectorError, ToolNotFoundError
from .models import ImageAnalysis
from .progress import Event, InspectionProgress, InspectionStatus, ProgressRelay
from .validation import validate_image_name

logger = get_logger(__name__)


class InspectionService:
    """
    Orchestrates one inspection per call and relays its milestones.

    Progress bands: checking 10%, pulling 20-60%, analyzing 60-95%,
    complete 100%.
    """

    def __init__(self, docker_client: DockerClient, analyzer: ImageAnalyzer, relay: ProgressRelay):
        self.docker = docker_client
        self.analyzer = analyzer
        self.relay = relay

    @property
    def tracker(self):
        return self.relay.tracker

    async def inspect(self, image_name: str) -> ImageAnalysis:
        """
        Run a full inspection of an image.

        Args:
            image_name: Image reference, validated before anything else happens

        Returns:
            ImageAnalysis

        Raises:
            InspectorError: Any failure, after the progress record is set to ``error``
        """
        image_name = validate_image_name(image_name)
        logger.info(f"Starting inspection for image: {image_name}")
        self.tracker.start(image_name)
        await self.relay.update(image_name, status=InspectionStatus.STARTING, progress=0)

        try:
            analysis = await self._run(image_name)
        except Exception as e:
            logger.error(f"Inspection error for {image_name}: {e}")
            self.tracker.update(image_name, status=InspectionStatus.ERROR, progress=0, message=str(e), error=str(e))
            await self.relay.publish(image_name, Event.ERROR, {"error": str(e)})
            raise

        await self.relay.update(
            image_name, status=InspectionStatus.COMPLETE, progress=100, message="Analysis complete!"
        )
        await self.relay.publish(
            image_name,
            Event.COMPLETE,
            {"efficiency": analysis.efficiency, "wasted_space": analysis.wasted_space, "source": analysis.source},
        )
        return analysis

    async def _run(self, image_name: str) -> ImageAnalysis:
        if not await asyncio.to_thread(self.docker.is_available):
            raise DockerUnavailableError("Docker is not available or not accessible")
        if not await self.analyzer.is_available():
            raise ToolNotFoundError("Dive tool is not available")

        await self.relay.update(
            image_name,
            status=InspectionStatus.CHECKING,
            progress=10,
            message="Checking if image exists locally...",
        )

        if not await asyncio.to_thread(self.docker.image_exists, image_name):
            await self.relay.update(
                image_name,
                status=InspectionStatus.PULLING,
                progress=20,
                message="Image not found locally, pulling from registry...",
            )
            pending: List[asyncio.Future] = []
            on_pull = self._progress_callback(
                image_name, InspectionStatus.PULLING, 20, 0.4, 60, "Pulling image...", pending
            )
            try:
                await asyncio.to_thread(self.docker.pull_image, image_name, on_pull)
            finally:
                await self._drain(pending)

        await self.relay.update(
            image_name,
            status=InspectionStatus.ANALYZING,
            progress=60,
            message="Starting dive analysis...",
        )
        pending = []
        on_analyze = self._progress_callback(
            image_name, InspectionStatus.ANALYZING, 60, 0.35, 95, "Analyzing image layers...", pending
        )
        try:
            analysis = await self.analyzer.analyze(image_name, on_analyze)
        finally:
            await self._drain(pending)

        if analysis.source != "mock":
            try:
                analysis.metadata = await asyncio.to_thread(self.docker.get_metadata, image_name)
            except (InspectorError, docker.errors.DockerException) as e:
                logger.warning(f"Could not read image metadata for {image_name}: {e}")

        return analysis

    def _progress_callback(
        self,
        image_name: str,
        status: InspectionStatus,
        start: float,
        scale: float,
        ceiling: float,
        default_message: str,
        pending: List[asyncio.Future],
    ) -> Callable[[Dict[str, Any]], None]:
        """Build a callback, safe to call from worker threads, that maps a step's 0..100 into its band."""
        loop = asyncio.get_running_loop()

        def apply(update: Dict[str, Any]) -> None:
            progress = min(start + (update.get("progress") or 0) * scale, ceiling)
            pending.append(
                asyncio.ensure_future(
                    self.relay.update(
                        image_name,
                        status=status,
                        progress=progress,
                        message=update.get("message") or default_message,
                    )
                )
            )

        def callback(update: Dict[str, Any]) -> None:
            loop.call_soon_threadsafe(apply, update)

        return callback

    @staticmethod
    async def _drain(pending: List[asyncio.Future]) -> None:
        # let callbacks queued by call_soon_threadsafe create their tasks
        await asyncio.sleep(0)
        if pending:
            await asyncio.gather(*pending)

    async def cancel(self, image_name: str) -> Optional[InspectionProgress]:
        """
        Stop tracking an inspection and notify its subscriber.

        The dive process, if any, keeps running to completion.

        Returns:
            The removed record, or None if nothing was tracked
        """
        record = self.tracker.remove(image_name)
        if record is None:
            return None

        record.status = InspectionStatus.CANCELLED
        await self.relay.publish(image_name, Event.CANCELLED, {"message": "Inspection cancelled by user"})
        logger.info(f"Inspection cancelled for {image_name}")
        return record

    async def health(self) -> Dict[str, Any]:
        docker_available = await asyncio.to_thread(self.docker.is_available)
        docker_version = await asyncio.to_thread(self.docker.version) if docker_available else None
        dive_available = await self.analyzer.is_available()

        return {
            "status": "healthy" if docker_available and dive_available else "unhealthy",
            "dependencies": {
                "docker": {"available": docker_available, "version": docker_version},
                "dive": {"available": dive_available},
            },
            "active_inspections": len(self.tracker),
        }
