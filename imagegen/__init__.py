"""Image generation service with request caching and atomic asset persistence."""

__version__ = "1.0.0"
