"""Docker Engine access: availability, pulls and local image metadata."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import docker
from docker.utils import parse_repository_tag

from shared.logger import get_logger

from .exceptions import DockerUnavailableError, ImageNotFoundError, ImagePullError
from .models import ImageMetadata, format_bytes

logger = get_logger(__name__)

MAX_COMMAND_LENGTH = 100
NOT_FOUND_MARKERS = ("not found", "manifest unknown", "does not exist", "repository does not exist")


@dataclass
class HistoryEntry:
    """One entry of ``docker history`` for an image."""

    id: str
    size: int
    created_by: str
    comment: str = ""

    @property
    def size_human(self) -> str:
        return format_bytes(self.size)


def clean_command(created_by: str) -> str:
    """Turn a raw history ``CreatedBy`` string into a Dockerfile-like instruction."""
    if created_by.startswith("/bin/sh -c #(nop) "):
        created_by = created_by[len("/bin/sh -c #(nop) "):]
    elif created_by.startswith("/bin/sh -c "):
        created_by = "RUN " + created_by[len("/bin/sh -c "):]
    if created_by.startswith("#(nop) "):
        created_by = created_by[len("#(nop) "):]
    return created_by.strip()


class DockerClient:
    """
    Thin wrapper over the Docker SDK.

    The daemon connection is opened on first use so that a process can start
    and report health while Docker is down.

    Attributes:
        client: Docker SDK client instance
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
                logger.debug("Connected to Docker daemon")
            except docker.errors.DockerException as e:
                logger.error(f"Failed to connect to Docker: {e}")
                raise DockerUnavailableError(f"Cannot connect to Docker daemon: {e}")
        return self._client

    def is_available(self) -> bool:
        """Check that the daemon answers a ping."""
        try:
            return bool(self.client.ping())
        except (DockerUnavailableError, docker.errors.DockerException) as e:
            logger.error(f"Docker is not available: {e}")
            return False

    def version(self) -> Optional[str]:
        try:
            return self.client.version().get("Version")
        except (DockerUnavailableError, docker.errors.DockerException) as e:
            logger.error(f"Failed to get Docker version: {e}")
            return None

    def image_exists(self, image_name: str) -> bool:
        """
        Check if an image exists locally.

        Raises:
            DockerUnavailableError: If the daemon cannot be queried
        """
        try:
            self.client.images.get(image_name)
            return True
        except docker.errors.ImageNotFound:
            return False
        except docker.errors.APIError as e:
            raise DockerUnavailableError(f"Docker API error: {e}") from e

    def pull_image(
        self,
        image_name: str,
        progress_callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        """
        Pull an image, reporting each status line from the daemon.

        Args:
            image_name: Image reference to pull (tag defaults to ``latest``)
            progress_callback: Receives ``{"message", "progress"}``, progress in 0..100

        Raises:
            ImageNotFoundError: If the registry does not know the image
            ImagePullError: If the pull fails for any other reason
        """
        repository, tag = parse_repository_tag(image_name)
        tag = tag or "latest"
        logger.info(f"Pulling image: {repository}:{tag}")

        try:
            for event in self.client.api.pull(repository, tag=tag, stream=True, decode=True):
                if "error" in event:
                    raise self._pull_error(image_name, event["error"])

                if progress_callback:
                    progress_callback(self._describe_pull_event(event))
        except docker.errors.NotFound as e:
            raise ImageNotFoundError(f"Image not found: {image_name}") from e
        except docker.errors.APIError as e:
            raise self._pull_error(image_name, str(e)) from e

        logger.info(f"Successfully pulled {image_name}")

    @staticmethod
    def _pull_error(image_name: str, message: str) -> Exception:
        if any(marker in message.lower() for marker in NOT_FOUND_MARKERS):
            return ImageNotFoundError(f"Image not found: {image_name} ({message})")
        return ImagePullError(f"Failed to pull image {image_name}: {message}")

    @staticmethod
    def _describe_pull_event(event: Dict[str, Any]) -> Dict[str, Any]:
        status = event.get("status", "")
        layer_id = event.get("id")
        detail = event.get("progressDetail") or {}

        progress = 0.0
        current, total = detail.get("current"), detail.get("total")
        if current and total:
            progress = min(current / total * 100, 100.0)

        message = f"{layer_id}: {status}" if layer_id else status
        return {"message": message, "progress": progress}

    def get_metadata(self, image_name: str) -> ImageMetadata:
        """
        Read id, creation time and platform of a local image.

        Raises:
            ImageNotFoundError: If the image is not present locally
            DockerUnavailableError: If the daemon cannot be queried
        """
        try:
            image = self.client.images.get(image_name)
        except docker.errors.ImageNotFound as e:
            raise ImageNotFoundError(f"Image not found: {image_name}") from e
        except docker.errors.DockerException as e:
            raise DockerUnavailableError(f"Docker API error: {e}") from e

        return ImageMetadata(
            image_id=image.id,
            created=image.attrs.get("Created"),
            architecture=image.attrs.get("Architecture", "unknown"),
            os=image.attrs.get("Os", "unknown"),
        )

    def get_history(self, image_name: str) -> List[HistoryEntry]:
        """
        Get the build history of a local image, oldest layer first.

        Raises:
            ImageNotFoundError: If the image is not present locally
        """
        try:
            image = self.client.images.get(image_name)
        except docker.errors.ImageNotFound as e:
            raise ImageNotFoundError(f"Image not found: {image_name}") from e

        entries = []
        for entry in image.history():
            created_by = clean_command(entry.get("CreatedBy", ""))
            if len(created_by) > MAX_COMMAND_LENGTH:
                created_by = created_by[: MAX_COMMAND_LENGTH - 3] + "..."

            entries.append(
                HistoryEntry(
                    id=entry.get("Id", "N/A"),
                    size=entry.get("Size", 0),
                    created_by=created_by,
                    comment=entry.get("Comment", ""),
                )
            )

        return list(reversed(entries))

    def list_images(self) -> List[dict]:
        """
        List all Docker images on the system.

        Returns:
            List of image information dicts
        """
        result = []

        for img in self.client.images.list():
            tags = img.tags or []
            name = tags[0] if tags else img.short_id
            repository, _, tag = name.rpartition(":") if tags else (name, "", "")
            result.append(
                {
                    "name": name,
                    "id": img.id,
                    "repository": repository,
                    "tag": tag or "latest",
                    "tags": tags,
                    "size": img.attrs.get("Size", 0),
                    "size_human": format_bytes(img.attrs.get("Size", 0)),
                    "created": img.attrs.get("Created", "Unknown"),
                }
            )

        return result

    def remove_image(self, image_name: str, force: bool = False) -> None:
        """
        Remove a local image.

        Raises:
            ImageNotFoundError: If the image is not present locally
            DockerUnavailableError: If the daemon refuses the removal
        """
        try:
            self.client.images.remove(image_name, force=force)
            logger.info(f"Removed image {image_name}")
        except docker.errors.ImageNotFound as e:
            raise ImageNotFoundError(f"Image not found: {image_name}") from e
        except docker.errors.APIError as e:
            raise DockerUnavailableError(f"Failed to remove image {image_name}: {e}") from e
