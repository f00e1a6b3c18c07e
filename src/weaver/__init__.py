"""History Weaver - compile and replay plausible repository histories."""

__version__ = "0.1.0"
