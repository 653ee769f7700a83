"""PixelFlex: batch image conversion with optional AI enhancement."""

__version__ = "1.0.0"
