"""splice - staged FFmpeg pipeline for non-linear video editing operations."""

__version__ = "0.1.0"
