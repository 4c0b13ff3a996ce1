"""
DXBData engine package.
"""
from src import __version__

__all__ = ["__version__"]
