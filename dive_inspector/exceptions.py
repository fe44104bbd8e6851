"""Custom exceptions for the dive inspector."""


class InspectorError(Exception):
    """Base exception for all inspection errors."""

    status_code = 500


class ConfigError(InspectorError):
    """Raised when configuration values are invalid."""

    pass


class InvalidImageReferenceError(InspectorError):
    """Raised when an image reference fails validation."""

    status_code = 400


class ToolNotFoundError(InspectorError):
    """Raised when the dive binary cannot be executed."""

    status_code = 503


class DockerUnavailableError(InspectorError):
    """Raised when the Docker daemon cannot be reached."""

    status_code = 503


class ImageNotFoundError(InspectorError):
    """Raised when an image exists neither locally nor in the registry."""

    status_code = 404


class ImagePullError(InspectorError):
    """Raised when pulling an image fails."""

    status_code = 502


class AnalysisTimeoutError(InspectorError):
    """Raised when dive does not finish within the configured timeout."""

    status_code = 504


class AnalysisFailedError(InspectorError):
    """Raised when dive exits with a non-zero status."""

    status_code = 502

    def __init__(self, message: str, returncode: int = -1, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ParseError(InspectorError):
    """Raised when dive output cannot be parsed."""

    status_code = 502
