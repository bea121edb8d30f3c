"""
breathco: breath carbon-monoxide analysis.

Turns synchronized raw CO / temperature windows from a breath sensor into a
ppm estimate with calibration provenance and data-quality flags.
"""

from typing import Any

__all__ = ["BreathAnalyzer", "analyze_breath"]


def __getattr__(name: str) -> Any:
    """Lazy load the analyzer so `import breathco` stays light."""
    if name == "BreathAnalyzer":
        from breathco.analysis.analyzer import BreathAnalyzer

        return BreathAnalyzer
    if name == "analyze_breath":
        from breathco.analysis.analyzer import analyze_breath

        return analyze_breath
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
