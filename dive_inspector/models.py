"""Data types for image analysis results."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def format_bytes(bytes_val: float) -> str:
    """
    Format bytes into human-readable string.

    Args:
        bytes_val: Number of bytes

    Returns:
        Human-readable string (e.g., "1.5 GB")
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(bytes_val) < 1024.0:
            return f"{bytes_val:.2f} {unit}"
        bytes_val /= 1024.0
    return f"{bytes_val:.2f} PB"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LayerInfo:
    """Information about a single image layer as reported by dive."""

    id: str
    index: int
    command: str
    size: int
    wasted_size: int = 0
    efficiency: float = 100.0
    file_count: int = 0
    change_type: str = "modified"
    size_percentage: float = 0.0
    created: Optional[str] = None

    @property
    def size_mb(self) -> float:
        """Get size in megabytes."""
        return self.size / (1024 * 1024)

    @property
    def size_human(self) -> str:
        """Get human-readable size."""
        return format_bytes(self.size)


@dataclass
class InefficientFile:
    """A path that is duplicated or removed across layers."""

    path: str
    count: int
    wasted_size: int


@dataclass
class ImageMetadata:
    image_id: str = "unknown"
    created: Optional[str] = None
    architecture: str = "unknown"
    os: str = "unknown"


@dataclass
class ImageAnalysis:
    """Complete dive analysis of a Docker image."""

    image_name: str
    total_size: int
    wasted_space: int
    efficiency: float
    layers: List[LayerInfo]
    metadata: ImageMetadata = field(default_factory=ImageMetadata)
    inefficient_files: List[InefficientFile] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    source: str = "json"
    timestamp: str = field(default_factory=utc_now)

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    @property
    def user_data(self) -> int:
        """Bytes of the image that are not wasted."""
        return self.total_size - self.wasted_space

    @property
    def wasted_percent(self) -> float:
        if self.total_size <= 0:
            return 0.0
        return round(self.wasted_space / self.total_size * 100, 1)

    @property
    def size_human(self) -> str:
        return format_bytes(self.total_size)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the API response shape."""
        return {
            "image_name": self.image_name,
            "timestamp": self.timestamp,
            "source": self.source,
            "summary": {
                "total_layers": self.layer_count,
                "total_size": self.total_size,
                "wasted_space": self.wasted_space,
                "wasted_percent": self.wasted_percent,
                "efficiency": self.efficiency,
                "user_data": self.user_data,
            },
            "layers": [asdict(layer) for layer in self.layers],
            "metadata": asdict(self.metadata),
            "inefficient_files": [asdict(f) for f in self.inefficient_files],
            "suggestions": list(self.suggestions),
        }
