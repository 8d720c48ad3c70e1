"""Sustained-load publisher for Kafka."""

__version__ = "0.1.0"
