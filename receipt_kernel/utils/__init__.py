"""Utility functions for the receipt kernel."""

from receipt_kernel.utils.hashing import canonicalize_json, hash_content, hash_payload
from receipt_kernel.utils.retry import TRANSIENT_DB_ERRORS, TRANSIENT_IO_ERRORS, call_with_retries

__all__ = [
    "TRANSIENT_DB_ERRORS",
    "TRANSIENT_IO_ERRORS",
    "call_with_retries",
    "canonicalize_json",
    "hash_content",
    "hash_payload",
]
