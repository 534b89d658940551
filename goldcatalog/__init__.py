"""Gold catalog pricing service."""

__version__ = "1.0.0"
