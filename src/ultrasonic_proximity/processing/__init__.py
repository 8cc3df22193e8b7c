"""Signal processing stages."""

from .dsp import SpectralFrameAnalyzer

__all__ = ["SpectralFrameAnalyzer"]
