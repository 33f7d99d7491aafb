"""MySQL dump, rotation and publishing runner."""

__version__ = "1.0.0"
