"""mongosetup — install and manage a local MongoDB."""

__version__ = "0.1.0"
