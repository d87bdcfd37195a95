"""
Segment Directory — the ordered output of one scan.

A Segment is a pair of offsets plus a shared reference to the scanned
buffer; it never copies bytes. The buffer must stay open for as long as
any Segment derived from it is used (the manager closes it only after
the writer has finished).
"""

import hashlib
from dataclasses import dataclass, field
from typing import Iterator

from .signatures import (
    FORMAT_OPAQUE,
    extension_for,
    get_all_formats,
)

MODE_PARTITION = "partition"
MODE_SINGLE = "single"
SCAN_MODES = (MODE_PARTITION, MODE_SINGLE)

MIN_INDEX_WIDTH = 3


@dataclass(frozen=True)
class Segment:
    """A classified byte range [start, end) of the scanned buffer."""
    format_tag: str                 # "PNG", "JPG", "GIF" or "OPAQUE"
    start: int
    end: int                        # exclusive
    buffer: object = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if not 0 <= self.start < self.end:
            raise ValueError(
                f"invalid segment range [{self.start}, {self.end})")
        if self.buffer is not None and self.end > len(self.buffer):
            raise ValueError(
                f"segment end {self.end} past buffer length {len(self.buffer)}")

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def is_opaque(self) -> bool:
        return self.format_tag == FORMAT_OPAQUE

    @property
    def extension(self) -> str:
        return extension_for(self.format_tag)

    @property
    def offset_hex(self) -> str:
        return f"0x{self.start:X}"

    @property
    def size_human(self) -> str:
        return _human_size(self.size)

    def view(self) -> memoryview:
        """Zero-copy view of the bytes. Release it (``with``) when done."""
        if self.buffer is None:
            raise ValueError("segment is not attached to a buffer")
        return memoryview(self.buffer)[self.start:self.end]

    def tobytes(self) -> bytes:
        with self.view() as view:
            return view.tobytes()

    def md5(self) -> str:
        with self.view() as view:
            return hashlib.md5(view).hexdigest()


def index_width(total: int) -> int:
    """Zero-pad width for partition artifact numbers."""
    return max(MIN_INDEX_WIDTH, len(str(total)))


def partition_name(index: int, total: int, extension: str) -> str:
    """image_001.png, image_002.bin, ... (index counts from 1)."""
    return f"image_{index:0{index_width(total)}d}.{extension}"


def single_type_name(extension: str, index: int) -> str:
    """png_image_0.png, jpg_image_3.jpg, ... (index counts from 0 per format)."""
    return f"{extension}_image_{index}.{extension}"


@dataclass(frozen=True)
class ScanResult:
    """Immutable, ordered result of one scanner invocation."""
    mode: str
    buffer_length: int
    segments: tuple[Segment, ...] = ()

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def __getitem__(self, i: int) -> Segment:
        return self.segments[i]

    @property
    def images(self) -> list[Segment]:
        return [s for s in self.segments if not s.is_opaque]

    @property
    def covered_bytes(self) -> int:
        return sum(s.size for s in self.segments)

    def count_by_format(self) -> dict[str, int]:
        counts = {tag: 0 for tag in get_all_formats()}
        if self.mode == MODE_PARTITION:
            counts[FORMAT_OPAQUE] = 0
        for s in self.segments:
            counts[s.format_tag] = counts.get(s.format_tag, 0) + 1
        return counts

    def is_full_partition(self) -> bool:
        """True if the segments tile [0, buffer_length) with no gap or overlap."""
        pos = 0
        for s in self.segments:
            if s.start != pos:
                return False
            pos = s.end
        return pos == self.buffer_length

    def named_segments(self) -> Iterator[tuple[str, Segment]]:
        """(file name, segment) pairs using the naming scheme of the mode."""
        if self.mode == MODE_PARTITION:
            total = len(self.segments)
            for i, seg in enumerate(self.segments, 1):
                yield partition_name(i, total, seg.extension), seg
        else:
            per_format: dict[str, int] = {}
            for seg in self.segments:
                n = per_format.get(seg.format_tag, 0)
                per_format[seg.format_tag] = n + 1
                yield single_type_name(seg.extension, n), seg

    @property
    def summary(self) -> dict:
        return {
            "mode": self.mode,
            "buffer_length": self.buffer_length,
            "segments": len(self.segments),
            "covered_bytes": self.covered_bytes,
            "by_format": self.count_by_format(),
        }


def _human_size(nbytes: int) -> str:
    size = float(nbytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
