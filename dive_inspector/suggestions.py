"""Optimization hints derived from a layer analysis."""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .models import ImageAnalysis

LOW_EFFICIENCY_THRESHOLD = 70.0
MAX_REASONABLE_LAYERS = 10
LARGE_LAYER_MB = 100


def generate_suggestions(analysis: "ImageAnalysis") -> List[str]:
    """
    Generate optimization suggestions for an analysis.

    Args:
        analysis: ImageAnalysis object

    Returns:
        List of suggestion strings, most specific first
    """
    suggestions = []
    layers = analysis.layers
    commands = [layer.command.lower() for layer in layers]

    if analysis.efficiency and analysis.efficiency < LOW_EFFICIENCY_THRESHOLD:
        suggestions.append("Consider using multi-stage builds to reduce final image size")

    if analysis.wasted_space > 0 or any(layer.wasted_size > 0 for layer in layers):
        suggestions.append("Remove unnecessary files and packages in the same RUN command")

    if len(layers) > MAX_REASONABLE_LAYERS:
        suggestions.append(f"Combine RUN commands to reduce layer count ({len(layers)} layers)")

    large_layers = [layer for layer in layers if layer.size_mb > LARGE_LAYER_MB]
    if large_layers:
        suggestions.append(
            f"Found {len(large_layers)} layer(s) over {LARGE_LAYER_MB} MB. Review them for build artifacts or caches."
        )

    if any("apt-get" in c for c in commands) and not any("rm -rf /var/lib/apt" in c for c in commands):
        suggestions.append("Detected apt-get usage without cache cleanup. Add: && rm -rf /var/lib/apt/lists/*")

    if any("npm install" in c for c in commands) and not any("npm cache clean" in c for c in commands):
        suggestions.append("Detected npm install without cache cleanup. Add: && npm cache clean --force")

    suggestions.append("Use .dockerignore to exclude unwanted files")
    suggestions.append("Order Dockerfile instructions from least to most frequently changing")

    return suggestions
