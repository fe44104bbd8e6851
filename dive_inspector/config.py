"""Runtime configuration loaded from the environment."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

ENV_PREFIX = "DIVE_INSPECTOR_"

TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Configuration for the inspector service."""

    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"
    log_level: str = "INFO"
    dive_command: str = "dive"
    analysis_timeout: float = 300.0
    max_concurrent_analyses: int = 2
    progress_retention: float = 300.0
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "dive-inspector")
    mock_fallback: bool = False
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        A ``.env`` file in the working directory is loaded first when reading
        the process environment.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Settings instance

        Raises:
            ConfigError: If a numeric value cannot be parsed or is out of range
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        defaults = cls()

        def get(key: str) -> Optional[str]:
            value = environ.get(ENV_PREFIX + key)
            if value is None or value.strip() == "":
                return None
            return value.strip()

        def get_number(key: str, default, kind, minimum):
            raw = get(key)
            if raw is None:
                return default
            try:
                value = kind(raw)
            except ValueError:
                raise ConfigError(f"{ENV_PREFIX}{key} must be a number, got {raw!r}")
            if value < minimum:
                raise ConfigError(f"{ENV_PREFIX}{key} must be >= {minimum}, got {value}")
            return value

        temp_dir = get("TEMP_DIR")
        mock_fallback = get("MOCK_FALLBACK")
        cors_origins = get("CORS_ORIGINS")

        return cls(
            host=get("HOST") or defaults.host,
            port=get_number("PORT", defaults.port, int, 0),
            environment=(get("ENV") or defaults.environment).lower(),
            log_level=(get("LOG_LEVEL") or defaults.log_level).upper(),
            dive_command=get("DIVE_COMMAND") or defaults.dive_command,
            analysis_timeout=get_number("ANALYSIS_TIMEOUT", defaults.analysis_timeout, float, 1),
            max_concurrent_analyses=get_number("MAX_CONCURRENT", defaults.max_concurrent_analyses, int, 1),
            progress_retention=get_number("PROGRESS_RETENTION", defaults.progress_retention, float, 0),
            temp_dir=Path(temp_dir) if temp_dir else defaults.temp_dir,
            mock_fallback=mock_fallback.lower() in TRUE_VALUES if mock_fallback else False,
            cors_origins=(
                [o.strip() for o in cors_origins.split(",") if o.strip()]
                if cors_origins
                else defaults.cors_origins
            ),
        )
