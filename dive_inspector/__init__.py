"""Dive Inspector - Docker image layer efficiency reports built on dive."""

__version__ = "0.1.0"

from .dive import DiveAnalyzer, ImageAnalyzer
from .docker_client import DockerClient
from .inspection import InspectionService
from .models import ImageAnalysis, LayerInfo

__all__ = [
    "DiveAnalyzer",
    "DockerClient",
    "ImageAnalysis",
    "ImageAnalyzer",
    "InspectionService",
    "LayerInfo",
]
