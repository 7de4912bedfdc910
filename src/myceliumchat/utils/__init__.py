"""Utility helpers with no dependency on services or clients."""

from .http import DEFAULT_MAX_RESPONSE_SIZE, client_timeout, read_bounded_json


__all__ = ["DEFAULT_MAX_RESPONSE_SIZE", "client_timeout", "read_bounded_json"]
