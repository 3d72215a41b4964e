"""Application runtime package."""

from fractal.app.runtime import AppRuntime

__all__ = ["AppRuntime"]
