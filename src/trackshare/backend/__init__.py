"""Trackshare backend layer — remote client and domain adapter."""

from trackshare.backend.adapter import BackendAdapter, create_search_string
from trackshare.backend.client import BackendClient, BackendError

__all__ = ["BackendAdapter", "BackendClient", "BackendError", "create_search_string"]
