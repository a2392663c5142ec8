"""Unattended microphone recorder that splits takes on silence."""

__version__ = "0.1.0"
