"""Caller identity for the HTTP endpoints.

Session validation happens upstream (reverse proxy / identity provider);
the backend only reads the authenticated caller id from a trusted header.
"""
from .dependencies import get_current_user_id, read_user_id

__all__ = ["get_current_user_id", "read_user_id"]
