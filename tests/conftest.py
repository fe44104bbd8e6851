"""Test configuration and fixtures."""

from unittest.mock import MagicMock

import pytest

from dive_inspector.config import Settings
from dive_inspector.docker_client import DockerClient
from dive_inspector.models import ImageMetadata
from dive_inspector.progress import ProgressRelay, ProgressTracker


@pytest.fixture
def settings(tmp_path):
    """Settings writing reports under the test's temp directory."""
    return Settings(temp_dir=tmp_path / "reports", progress_retention=60)


@pytest.fixture
def docker_client():
    """DockerClient double for an engine that already has every image."""
    client = MagicMock(spec=DockerClient)
    client.is_available.return_value = True
    client.version.return_value = "24.0.7"
    client.image_exists.return_value = True
    client.get_metadata.return_value = ImageMetadata(
        image_id="sha256:0123456789abcdef",
        created="2024-01-01T00:00:00Z",
        architecture="amd64",
        os="linux",
    )
    client.list_images.return_value = []
    return client


@pytest.fixture
def relay():
    return ProgressRelay(ProgressTracker(retention=60))
