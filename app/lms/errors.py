"""
LMS-layer exceptions.
"""

from __future__ import annotations


class LMSRequestError(RuntimeError):
    """
    Raised when an LMS call fails in transport: timeout, connection error,
    non-2xx status, or an LMS error envelope in an otherwise successful reply.
    """


class LMSPayloadError(ValueError):
    """
    Raised when an LMS response cannot be interpreted as the expected shape.
    """
