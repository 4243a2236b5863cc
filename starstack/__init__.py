"""StarStack package for star-based alignment and mean stacking of drifting frames."""

__version__ = "0.1.0"

__all__ = [
    "cli",
    "config",
    "detect",
    "errors",
    "frames",
    "io",
    "match",
    "overlay",
    "pipeline",
    "probe",
    "register",
    "stack",
]
