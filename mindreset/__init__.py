"""Mind Reset session and identity synchronization core."""

__version__ = "0.1.0"
