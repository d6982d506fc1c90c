"""tweek-auth - token lifecycle and resilient HTTP for the Tweek API."""

from ._version import __version__


__all__ = ["__version__"]
