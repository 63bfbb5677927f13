"""Trackshare — HTTP API for uploading, searching and streaming shared audio tracks."""

__version__ = "0.1.0"
