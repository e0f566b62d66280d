"""Facility booking sync: keeps the local booking store in step with the STO reservation portal."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("booking-sync")
except PackageNotFoundError:  # pragma: no cover - fallback during local dev
    __version__ = "0.0.0"

__all__ = ["__version__"]
