"""modelhub - local model registry and artifact manager."""

__version__ = "0.1.0"
