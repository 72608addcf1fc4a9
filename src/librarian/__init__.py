"""Library loan and rating service."""

__version__ = "0.1.0"
