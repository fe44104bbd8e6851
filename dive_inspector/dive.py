"""Run the dive CLI against an image and turn its report into an ImageAnalysis."""

import asyncio
import os
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.logger import get_logger

from .exceptions import (
    AnalysisFailedError,
    AnalysisTimeoutError,
    InspectorError,
    InvalidImageReferenceError,
    ParseError,
    ToolNotFoundError,
)
from .models import ImageAnalysis
from .parser import load_json_report, mock_analysis, parse_dive_output
from .validation import validate_image_name

logger = get_logger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], None]

REPORT_PREFIX = "dive-output-"
READ_CHUNK_SIZE = 4096
MAX_STDOUT_PROGRESS = 95.0


class ImageAnalyzer(ABC):
    """Interface for anything that can produce an ImageAnalysis for an image reference."""

    @abstractmethod
    async def analyze(self, image_name: str, progress_callback: Optional[ProgressCallback] = None) -> ImageAnalysis:
        """
        Analyze an image.

        Args:
            image_name: Image reference, already present in the local Docker engine
            progress_callback: Receives ``{"progress", "message"}`` updates, progress in 0..100

        Returns:
            ImageAnalysis

        Raises:
            InspectorError: If the analysis cannot be produced
        """
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        pass


class DiveAnalyzer(ImageAnalyzer):
    """
    Analyze images by running ``dive --json <report> <image>``.

    Attributes:
        command: dive executable name or path
        timeout: Seconds to wait for a single analysis
        temp_dir: Directory receiving the JSON reports
        mock_fallback: Return sample data instead of raising on failure
    """

    def __init__(
        self,
        command: str = "dive",
        timeout: float = 300.0,
        max_concurrent: int = 2,
        temp_dir: Optional[Path] = None,
        mock_fallback: bool = False,
    ):
        self.command = command
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.mock_fallback = mock_fallback
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._running = 0

        self.temp_dir.mkdir(parents=True, exist_ok=True)

    @property
    def running(self) -> int:
        """Number of dive processes currently running."""
        return self._running

    async def analyze(self, image_name: str, progress_callback: Optional[ProgressCallback] = None) -> ImageAnalysis:
        image_name = validate_image_name(image_name)
        logger.info(f"Starting dive analysis for image: {image_name}")

        try:
            async with self._semaphore:
                self._running += 1
                try:
                    return await self._run(image_name, progress_callback)
                finally:
                    self._running -= 1
        except InvalidImageReferenceError:
            raise
        except InspectorError as e:
            if not self.mock_fallback:
                raise
            logger.warning(f"Dive analysis failed for {image_name}, returning sample data: {e}")
            return mock_analysis(image_name, reason=str(e))

    async def _run(self, image_name: str, progress_callback: Optional[ProgressCallback]) -> ImageAnalysis:
        report = self.temp_dir / f"{REPORT_PREFIX}{uuid.uuid4().hex}.json"
        args = [self.command, "--json", str(report), image_name]
        env = {**os.environ, "DOCKER_CLI_EXPERIMENTAL": "enabled"}
        logger.debug(f"Executing command: {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolNotFoundError(f"Failed to start dive process: {e}") from e

        try:
            try:
                stdout, stderr = await asyncio.wait_for(
                    self._collect_output(process, progress_callback),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
                raise AnalysisTimeoutError(f"Dive analysis of {image_name} timed out after {self.timeout:g}s")

            if process.returncode != 0:
                message = stderr.strip() or stdout.strip()
                raise AnalysisFailedError(
                    f"Dive analysis failed with code {process.returncode}: {message}",
                    returncode=process.returncode,
                    stderr=stderr,
                )

            if report.exists():
                logger.debug(f"Reading dive report {report}")
                try:
                    content = report.read_text(encoding="utf-8")
                except UnicodeDecodeError as e:
                    raise ParseError(f"Dive JSON report is not valid UTF-8: {e}") from e
                analysis = load_json_report(content, image_name)
            else:
                logger.debug("Dive report not found, parsing stdout instead")
                analysis = parse_dive_output(stdout, image_name)
        finally:
            report.unlink(missing_ok=True)

        if progress_callback:
            progress_callback({"progress": 100.0, "message": "Analysis complete"})
        logger.info(f"Dive analysis finished for {image_name} ({analysis.layer_count} layers, {analysis.source})")
        return analysis

    async def _collect_output(
        self, process: asyncio.subprocess.Process, progress_callback: Optional[ProgressCallback]
    ) -> Tuple[str, str]:
        stdout_chunks: List[bytes] = []

        async def read_stdout() -> None:
            received = 0
            while True:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                stdout_chunks.append(chunk)
                received += len(chunk)
                if progress_callback:
                    # rough estimate, dive gives no real progress
                    progress_callback(
                        {
                            "progress": min(received / 1000, MAX_STDOUT_PROGRESS),
                            "message": "Analyzing image layers...",
                        }
                    )

        _, stderr = await asyncio.gather(read_stdout(), process.stderr.read())
        await process.wait()
        stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace")
        return stdout, stderr.decode("utf-8", errors="replace")

    async def version(self) -> Optional[str]:
        """Return the ``dive --version`` output, or None if dive cannot run."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=10)
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"Dive is not available: {e}")
            return None

        if process.returncode != 0:
            logger.error(f"Dive --version exited with code {process.returncode}")
            return None
        return stdout.decode("utf-8", errors="replace").strip()

    async def is_available(self) -> bool:
        return await self.version() is not None

    def cleanup_temp_files(self, max_age: float = 3600) -> int:
        """
        Remove dive reports older than ``max_age`` seconds.

        Returns:
            Number of files removed
        """
        removed = 0
        now = time.time()

        for path in self.temp_dir.glob(f"{REPORT_PREFIX}*.json"):
            try:
                if now - path.stat().st_mtime > max_age:
                    path.unlink()
                    removed += 1
                    logger.debug(f"Cleaned up old temp file: {path.name}")
            except FileNotFoundError:
                continue

        return removed
