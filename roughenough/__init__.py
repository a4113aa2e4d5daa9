"""Configuration, UDP/TCP transport handling and metrics for a Roughtime time server."""

__version__ = "2.0.0"