"""
Boundary Search — locate headers and terminators inside a resident buffer.

All searches run on Python's bytes.find() (also provided by bytearray and
mmap), so no per-byte Python loop is needed for the common stride of 1.
"""

import logging
from typing import Optional

from .signatures import SignatureInfo

logger = logging.getLogger(__name__)


class PatternIndex:
    """
    Memoised "next occurrence at or after" lookups over one buffer.

    The scanner's cursor only moves forward, so the last answer for a
    pattern stays valid until the cursor passes it. This keeps a scan
    linear even when the input is full of headers that never terminate.
    """

    def __init__(self, data):
        self._data = data
        # pattern -> (query start, first hit at or after it, or -1)
        self._cache: dict[bytes, tuple[int, int]] = {}
        self.lookups = 0
        self.hits = 0

    def find(self, pattern: bytes, start: int) -> int:
        self.lookups += 1
        cached = self._cache.get(pattern)
        if cached is not None:
            query, pos = cached
            if query <= start and (pos == -1 or pos >= start):
                self.hits += 1
                return pos
        pos = self._data.find(pattern, start)
        self._cache[pattern] = (start, pos)
        return pos


def find_terminator(
    data,
    start: int,
    pattern: bytes,
    stride: int = 1,
    index: Optional[PatternIndex] = None,
) -> Optional[int]:
    """
    Smallest offset >= `start` where `pattern` occurs on the window grid
    start, start + stride, start + 2*stride, ...

    Returns None if the pattern never occurs before the buffer ends.
    """
    if not pattern:
        raise ValueError("terminator pattern must not be empty")
    if stride < 1:
        raise ValueError(f"stride must be positive, got {stride}")

    find = index.find if index is not None else data.find
    pos = find(pattern, start)
    while pos != -1 and (pos - start) % stride:
        pos = find(pattern, pos + 1)
    if pos == -1:
        return None
    return pos


def find_next_header(
    data,
    start: int,
    signatures: list[SignatureInfo],
    index: Optional[PatternIndex] = None,
) -> Optional[tuple[int, SignatureInfo]]:
    """
    Earliest offset >= `start` where any header of `signatures` occurs.

    Two headers at the same offset resolve to the signature listed first.
    """
    find = index.find if index is not None else data.find
    best: Optional[tuple[int, SignatureInfo]] = None
    for sig in signatures:
        for header in sig.headers:
            pos = find(header, start)
            if pos != -1 and (best is None or pos < best[0]):
                best = (pos, sig)
    return best


def carve_end(
    data,
    offset: int,
    sig: SignatureInfo,
    index: Optional[PatternIndex] = None,
) -> Optional[int]:
    """Exclusive end of the span opened by `sig`'s header at `offset`."""
    pos = find_terminator(data, offset, sig.footer, sig.footer_stride, index)
    if pos is None:
        logger.debug("%s header at 0x%X has no terminator", sig.format_tag, offset)
        return None
    return pos + len(sig.footer)
