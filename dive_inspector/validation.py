"""Image reference validation, applied before anything is handed to a subprocess."""

import re

from .exceptions import InvalidImageReferenceError

MAX_IMAGE_NAME_LENGTH = 255

IMAGE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._/-]*[a-zA-Z0-9]*(:[a-zA-Z0-9._-]+)?$")


def is_valid_image_name(name: str) -> bool:
    """Check an image reference of the form ``[registry/]name[:tag]``."""
    if not isinstance(name, str):
        return False
    if not 1 <= len(name) <= MAX_IMAGE_NAME_LENGTH:
        return False
    return IMAGE_NAME_PATTERN.fullmatch(name) is not None


def validate_image_name(name: str) -> str:
    """
    Validate and normalize an image reference.

    Args:
        name: Raw image reference, surrounding whitespace is ignored

    Returns:
        The stripped reference

    Raises:
        InvalidImageReferenceError: If the reference is empty, too long or malformed
    """
    if not isinstance(name, str):
        raise InvalidImageReferenceError(f"Invalid image name: {name!r}")

    candidate = name.strip()
    if not candidate or len(candidate) > MAX_IMAGE_NAME_LENGTH:
        raise InvalidImageReferenceError(
            f"Image name must be between 1 and {MAX_IMAGE_NAME_LENGTH} characters"
        )
    if not is_valid_image_name(candidate):
        raise InvalidImageReferenceError(f"Invalid image name: {candidate}")
    return candidate
