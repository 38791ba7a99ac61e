"""
Input Errors

Raised by the strict decoders at the feed boundary. Never fatal: callers
drop the offending record and report a diagnostic.
"""

from typing import Any, Optional


class MalformedInputError(ValueError):
    """A trade or candle record with a missing, non-numeric or non-finite field"""

    def __init__(self, message: str, field: Optional[str] = None, record: Any = None):
        super().__init__(message)
        self.field = field
        self.record = record
