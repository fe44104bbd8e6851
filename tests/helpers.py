"""Test helpers: sample dive output, a scripted dive binary and in-memory fakes."""

import copy
import json
import stat
from pathlib import Path
from typing import Any, Dict, List, Optional

from dive_inspector.dive import ImageAnalyzer
from dive_inspector.models import ImageAnalysis, LayerInfo

DIVE_REPORT: Dict[str, Any] = {
    "layer": [
        {
            "index": 0,
            "id": "a1",
            "digestId": "sha256:aaa111",
            "sizeBytes": 5000000,
            "command": "#(nop) ADD file:abc in / ",
        },
        {
            "index": 1,
            "id": "b2",
            "digestId": "sha256:bbb222",
            "sizeBytes": 3000000,
            "command": "apt-get update && apt-get install -y curl",
            "fileList": [{"path": "/usr/bin/curl"}, {"path": "/var/lib/apt/lists/x"}],
        },
        {
            "index": 2,
            "id": "c3",
            "digestId": "sha256:ccc333",
            "sizeBytes": 2000000,
            "command": "COPY . /app",
        },
    ],
    "image": {
        "sizeBytes": 10000000,
        "inefficientBytes": 500000,
        "efficiencyScore": 0.9823,
        "fileReference": [
            {"count": 3, "sizeBytes": 200000, "file": "/tmp/cache"},
            {"count": 2, "sizeBytes": 300000, "file": "/var/lib/apt/lists/x"},
        ],
    },
}


def dive_report() -> Dict[str, Any]:
    return copy.deepcopy(DIVE_REPORT)


def write_fake_dive(directory: Path, body: str, version: Optional[str] = "dive 0.12.0") -> str:
    """
    Write an executable shell script standing in for the dive binary.

    The script answers ``--version`` and otherwise runs ``body`` with the
    report path in ``$2`` and the image in ``$3``.
    """
    script = directory / "dive"
    version_branch = (
        f'if [ "$1" = "--version" ]; then echo "{version}"; exit 0; fi\n'
        if version
        else 'if [ "$1" = "--version" ]; then exit 127; fi\n'
    )
    script.write_text("#!/bin/sh\n" + version_branch + body + "\n")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


def report_body(report: Optional[Dict[str, Any]] = None) -> str:
    """Shell snippet writing a dive JSON report to the requested path."""
    content = json.dumps(report if report is not None else DIVE_REPORT)
    return f"cat > \"$2\" <<'EOF'\n{content}\nEOF"


def sample_analysis(image_name: str = "nginx:latest", source: str = "json") -> ImageAnalysis:
    layers = [
        LayerInfo(id="sha256:aaa", index=0, command="ADD file:abc in /", size=600, change_type="added"),
        LayerInfo(id="sha256:bbb", index=1, command="RUN apk add curl", size=400, wasted_size=100, efficiency=75.0),
    ]
    return ImageAnalysis(
        image_name=image_name,
        total_size=1000,
        wasted_space=100,
        efficiency=90.0,
        layers=layers,
        suggestions=["Use .dockerignore to exclude unwanted files"],
        source=source,
    )


class RecordingChannel:
    """Relay channel collecting every payload it is sent."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    async def send_json(self, payload: Dict[str, Any]) -> None:
        self.messages.append(payload)

    @property
    def events(self) -> List[str]:
        return [m["event"] for m in self.messages]

    @property
    def statuses(self) -> List[str]:
        return [m["data"]["status"] for m in self.messages if m["event"] == "inspection-update"]


class BrokenChannel:
    async def send_json(self, payload: Dict[str, Any]) -> None:
        raise ConnectionResetError("socket closed")


class FakeAnalyzer(ImageAnalyzer):
    """Analyzer returning a canned result or raising a canned error."""

    def __init__(self, result: Optional[ImageAnalysis] = None, error: Optional[Exception] = None, available: bool = True):
        self.result = result
        self.error = error
        self.available = available
        self.calls: List[str] = []

    async def analyze(self, image_name, progress_callback=None):
        self.calls.append(image_name)
        if progress_callback:
            progress_callback({"progress": 50, "message": "Analyzing image layers..."})
        if self.error:
            raise self.error
        return self.result or sample_analysis(image_name)

    async def is_available(self):
        return self.available
