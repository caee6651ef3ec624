"""Multi-layer halftone and dither artwork generator."""

__version__ = "0.1.0"
