"""Interactive helper that prepares USB drives for Windows deployment."""

from .__version__ import __version__

__all__ = ["__version__"]
