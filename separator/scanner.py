"""
Carving Scanner — signature-based image carving over a resident buffer.

SCANNING MODES
──────────────
1. FULL-PARTITION MODE ("partition")
   • One interleaved pass over the buffer with a single cursor.
   • At each position the headers are tested in priority order
     PNG → JPG → GIF; the first match whose terminator exists is carved.
   • Everything else becomes OPAQUE. A filler span runs up to the next
     offset where any header matches, terminated or not, so a false
     positive header starts a new OPAQUE segment of its own.
   • The segments tile the whole input and can be concatenated back
     into it.

2. SINGLE-TYPE MODE ("single")
   • One independent pass per format over the whole buffer.
   • Only recognised images are emitted; unclaimed bytes are dropped.
   • Passes do not consume each other's bytes, so two formats may claim
     overlapping ranges. This is a known limitation of the mode.

HOW A SPAN IS CLOSED
────────────────────
1.  A header literal matches at offset i.
2.  The terminator is searched from i onward (bytes.find()).
3.  Found at t → segment [i, t + len(terminator)); the cursor jumps there.
4.  Not found → the header is a false positive. The scan never crosses
    the end of the buffer and never raises on content.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .boundary import PatternIndex, carve_end, find_next_header
from .segments import MODE_PARTITION, MODE_SINGLE, SCAN_MODES, ScanResult, Segment
from .signatures import FORMAT_OPAQUE, SignatureInfo, match_header, resolve_signatures

logger = logging.getLogger(__name__)


@dataclass
class ScanProgress:
    total_bytes: int = 0
    scanned_bytes: int = 0
    segments_found: int = 0
    current_format: str = ""        # format of the running pass (single mode)

    @property
    def progress_percent(self) -> float:
        if self.total_bytes == 0:
            return 100.0
        return min(100.0, (self.scanned_bytes / self.total_bytes) * 100)


class CarvingScanner:
    """
    Splits a byte buffer into image segments by magic bytes alone.

    The buffer may be bytes, bytearray or a read-only mmap; it is never
    modified and the returned segments borrow from it.
    """

    def __init__(
        self,
        mode: str = MODE_PARTITION,
        formats: Optional[Iterable[str]] = None,
        log: Optional[logging.Logger] = None,
    ):
        if mode not in SCAN_MODES:
            raise ValueError(
                f"Unknown scan mode {mode!r} (expected one of {', '.join(SCAN_MODES)})")
        self.mode = mode
        self.signatures: list[SignatureInfo] = resolve_signatures(formats)
        self._log = log or logger
        self.progress = ScanProgress()
        self._on_progress: Optional[Callable] = None

    def set_progress_callback(self, cb):
        self._on_progress = cb

    def scan(self, data) -> ScanResult:
        self.progress = ScanProgress(total_bytes=len(data))

        if self.mode == MODE_PARTITION:
            segments = self._scan_partition(data)
        else:
            segments = []
            for sig in self.signatures:
                self.progress.current_format = sig.format_tag
                self.progress.scanned_bytes = 0
                segments.extend(self._scan_single_type(data, sig))

        self.progress.scanned_bytes = len(data)
        self._notify_progress()

        result = ScanResult(
            mode=self.mode, buffer_length=len(data), segments=tuple(segments))
        self._log.debug("Scan complete (%s mode): %d segment(s) over %d bytes",
                        self.mode, len(result), len(data))
        return result

    # ─── Full-partition pass ──────────────────────────────────

    def _scan_partition(self, data) -> list[Segment]:
        segments: list[Segment] = []
        index = PatternIndex(data)
        size = len(data)
        i = 0

        while i < size:
            sig = match_header(data, i, self.signatures)
            if sig is not None:
                end = carve_end(data, i, sig, index)
                if end is not None:
                    self._emit(segments, data, sig.format_tag, i, end)
                    i = end
                    continue

            # No closable image at i: opaque filler up to the next header
            # of any format. That header is re-tested on the next round and
            # may itself open another filler span if it never terminates.
            hit = find_next_header(data, i + 1, self.signatures, index)
            stop = size if hit is None else hit[0]
            self._emit(segments, data, FORMAT_OPAQUE, i, stop)
            i = stop

        return segments

    # ─── Single-type pass ─────────────────────────────────────

    def _scan_single_type(self, data, sig: SignatureInfo) -> list[Segment]:
        segments: list[Segment] = []
        index = PatternIndex(data)
        i = 0

        while i < len(data):
            hit = find_next_header(data, i, [sig], index)
            if hit is None:
                break
            offset = hit[0]
            end = carve_end(data, offset, sig, index)
            if end is None:
                # False positive: retry one byte further on
                i = offset + 1
                continue
            self._emit(segments, data, sig.format_tag, offset, end)
            i = end

        self._log.debug("%s pass: %d image(s)", sig.format_tag, len(segments))
        return segments

    # ─── Helpers ──────────────────────────────────────────────

    def _emit(self, segments: list[Segment], data, tag: str, start: int, end: int):
        seg = Segment(format_tag=tag, start=start, end=end, buffer=data)
        segments.append(seg)
        self._log.debug("%-6s %s  %d bytes", tag, seg.offset_hex, seg.size)
        self.progress.segments_found += 1
        self.progress.scanned_bytes = end
        self._notify_progress()

    def _notify_progress(self):
        if self._on_progress:
            self._on_progress(self.progress)


def scan_buffer(data, mode: str = MODE_PARTITION,
                formats: Optional[Iterable[str]] = None) -> ScanResult:
    """Convenience wrapper: one scan with a throwaway scanner."""
    return CarvingScanner(mode=mode, formats=formats).scan(data)
