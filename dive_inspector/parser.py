"""Normalize dive output (JSON export or plain text) into ImageAnalysis objects."""

import json
import re
from typing import Any, Dict, List, Optional

from shared.logger import get_logger

from .exceptions import ParseError
from .models import ImageAnalysis, ImageMetadata, InefficientFile, LayerInfo
from .suggestions import generate_suggestions

logger = get_logger(__name__)

MAX_INEFFICIENT_FILES = 10

SIZE_UNITS = {
    "B": 1,
    "BYTE": 1,
    "BYTES": 1,
    "KB": 1024,
    "MB": 1024 * 1024,
    "GB": 1024 * 1024 * 1024,
    "TB": 1024 * 1024 * 1024 * 1024,
}

EFFICIENCY_PATTERN = re.compile(r"efficiency:\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
WASTED_PATTERN = re.compile(r"wasted(?:bytes)?:\s*(\d+(?:\.\d+)?)\s*([a-z]+)", re.IGNORECASE)


def parse_size(value: str, unit: str) -> int:
    """
    Convert a size with unit to bytes.

    Unknown units are treated as bytes.
    """
    return int(float(value) * SIZE_UNITS.get(unit.upper(), 1))


def calculate_layer_efficiency(size: int, wasted: int) -> float:
    if size <= 0:
        return 100.0
    return round((size - wasted) / size * 100, 1)


def calculate_size_percentage(layer_size: int, total_size: int) -> float:
    if not total_size:
        return 0.0
    return round(layer_size / total_size * 100, 2)


def determine_change_type(index: int) -> str:
    # dive does not report change kinds per layer; the base layer adds everything
    return "added" if index == 0 else "modified"


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_score(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    try:
        return round(float(value) * 100, 1)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Dive efficiencyScore is not a number: {value!r}") from e


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return str(value)


def _parse_layer(raw: Dict[str, Any], position: int, total_size: int) -> LayerInfo:
    index = raw.get("index")
    if not isinstance(index, int):
        index = position
    size = _as_int(raw.get("sizeBytes"))
    wasted = _as_int(raw.get("wastedBytes"))
    files = raw.get("fileList")

    return LayerInfo(
        id=_as_text(raw.get("digestId") or raw.get("id")) or f"layer-{position}",
        index=index,
        command=_as_text(raw.get("command")).strip() or "Unknown command",
        size=size,
        wasted_size=wasted,
        efficiency=calculate_layer_efficiency(size, wasted),
        file_count=len(files) if isinstance(files, list) else 0,
        change_type=determine_change_type(index),
        size_percentage=calculate_size_percentage(size, total_size),
        created=_as_text(raw.get("created")) or None,
    )


def _parse_inefficient_files(references: List[Dict[str, Any]]) -> List[InefficientFile]:
    files = [
        InefficientFile(
            path=_as_text(ref.get("file")),
            count=_as_int(ref.get("count")),
            wasted_size=_as_int(ref.get("sizeBytes")),
        )
        for ref in references
        if isinstance(ref, dict)
    ]
    files.sort(key=lambda f: f.wasted_size, reverse=True)
    return files[:MAX_INEFFICIENT_FILES]


def parse_json_output(data: Dict[str, Any], image_name: str) -> ImageAnalysis:
    """
    Build an analysis from dive's ``--json`` export.

    Args:
        data: Decoded JSON document with ``layer`` and ``image`` sections
        image_name: Analyzed image reference

    Returns:
        ImageAnalysis with source ``json``

    Raises:
        ParseError: If the document does not have the expected shape
    """
    if not isinstance(data, dict):
        raise ParseError("Dive JSON output is not an object")

    raw_layers = data.get("layer") or []
    image = data.get("image") or {}
    if not isinstance(raw_layers, list) or not isinstance(image, dict):
        raise ParseError("Dive JSON output has unexpected layer/image sections")

    total_size = _as_int(image.get("sizeBytes"))
    wasted_space = _as_int(image.get("inefficientBytes"))
    efficiency = _as_score(image.get("efficiencyScore"))

    references = image.get("fileReference") or []
    if not isinstance(references, list):
        raise ParseError("Dive JSON output has an unexpected fileReference section")

    layers = [_parse_layer(raw, i, total_size) for i, raw in enumerate(raw_layers) if isinstance(raw, dict)]
    logger.debug(
        f"Parsed dive JSON for {image_name}: {len(layers)} layers, "
        f"size={total_size}, wasted={wasted_space}, efficiency={efficiency}"
    )

    analysis = ImageAnalysis(
        image_name=image_name,
        total_size=total_size,
        wasted_space=wasted_space,
        efficiency=efficiency,
        layers=layers,
        metadata=ImageMetadata(),
        inefficient_files=_parse_inefficient_files(references),
        source="json",
    )
    analysis.suggestions = generate_suggestions(analysis)
    return analysis


def parse_text_output(stdout: str, image_name: str) -> ImageAnalysis:
    """
    Extract what little dive's plain-text report exposes.

    Only the overall efficiency and wasted bytes are recovered; the layer
    list holds a single placeholder entry.
    """
    efficiency = 0.0
    wasted_space = 0

    match = EFFICIENCY_PATTERN.search(stdout)
    if match:
        efficiency = float(match.group(1))

    match = WASTED_PATTERN.search(stdout)
    if match:
        wasted_space = parse_size(match.group(1), match.group(2))

    placeholder = LayerInfo(
        id="unknown",
        index=0,
        command="Analysis completed - details not available in text mode",
        size=0,
        wasted_size=wasted_space,
        efficiency=efficiency,
        change_type="unknown",
        size_percentage=100.0,
    )

    analysis = ImageAnalysis(
        image_name=image_name,
        total_size=0,
        wasted_space=wasted_space,
        efficiency=efficiency,
        layers=[placeholder],
        source="text",
    )
    analysis.suggestions = generate_suggestions(analysis)
    return analysis


def parse_dive_output(stdout: str, image_name: str) -> ImageAnalysis:
    """Parse dive stdout, preferring an inline JSON document over text."""
    text = (stdout or "").strip()
    if text.startswith("{"):
        try:
            return parse_json_output(json.loads(text), image_name)
        except json.JSONDecodeError:
            logger.warning("Failed to parse JSON from dive output, using text parsing")
    return parse_text_output(text, image_name)


def load_json_report(content: str, image_name: str) -> ImageAnalysis:
    """Parse the contents of a dive ``--json`` report file."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed dive JSON report: {e}") from e
    return parse_json_output(data, image_name)


MOCK_LAYERS = [
    ("sha256:abc123", "FROM node:18-alpine", 7340032, 0, 145),
    ("sha256:def456", "RUN apk add --no-cache curl", 2097152, 524288, 23),
    ("sha256:ghi789", "COPY package*.json ./", 8192, 0, 2),
    ("sha256:jkl012", "RUN npm ci --only=production", 6815744, 1048576, 892),
]


def mock_analysis(image_name: str, reason: Optional[str] = None) -> ImageAnalysis:
    """Fixed placeholder analysis, used only when mock fallback is enabled."""
    total_size = sum(layer[2] for layer in MOCK_LAYERS)
    wasted_space = sum(layer[3] for layer in MOCK_LAYERS)

    layers = [
        LayerInfo(
            id=layer_id,
            index=i,
            command=command,
            size=size,
            wasted_size=wasted,
            efficiency=calculate_layer_efficiency(size, wasted),
            file_count=files,
            change_type=determine_change_type(i),
            size_percentage=calculate_size_percentage(size, total_size),
        )
        for i, (layer_id, command, size, wasted, files) in enumerate(MOCK_LAYERS)
    ]

    analysis = ImageAnalysis(
        image_name=image_name,
        total_size=total_size,
        wasted_space=wasted_space,
        efficiency=round((total_size - wasted_space) / total_size * 100, 1),
        layers=layers,
        metadata=ImageMetadata(image_id="sha256:d2b6b5aedb5b", architecture="amd64", os="linux"),
        source="mock",
    )
    analysis.suggestions = generate_suggestions(analysis)
    if reason:
        analysis.suggestions.insert(0, f"Showing sample data: {reason}")
    return analysis
