"""revguard - tag and ID checker for Re:VIEW manuscripts."""

from revguard._version import __version__

__all__ = ["__version__"]
