"""Fractal CLI bootstrap."""

from __future__ import annotations

from fractal.cli import app

if __name__ == "__main__":
    app()
