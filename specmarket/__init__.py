"""Domain services for a marketplace of video and content-production specialists."""

__version__ = "0.1.0"