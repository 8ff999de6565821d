"""Errors raised while reading or writing config2 archives."""

from __future__ import annotations


class ArchiveError(Exception):
    """Error during archive decoding or encoding."""

    def __init__(self, message: str, offset: int = None, context: str = None):
        self.offset = offset
        self.context = context
        full_msg = message
        if offset is not None:
            full_msg = f"At byte {offset}: {message}"
        if context:
            full_msg += f" (in {context})"
        super().__init__(full_msg)


class UnexpectedEnd(ArchiveError):
    """A read would run past the end of the buffer."""


class UnknownTag(ArchiveError):
    """A tag byte does not name any value type."""

    def __init__(self, tag: int, offset: int = None, context: str = None):
        self.tag = tag
        super().__init__(f"Unknown tag: {tag}", offset, context)


class MalformedListState(ArchiveError):
    """List or pending-entry bookkeeping is inconsistent."""


class ValueOutOfRange(ArchiveError, ValueError):
    """A value does not fit the field it is written to."""
