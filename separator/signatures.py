"""
Image Signature Database — PNG, JPG and GIF carving markers.

DESIGN RATIONALE
────────────────
Only container formats with a fixed header AND a fixed trailer are carved:
  • PNG  — 8-byte magic, ends with the IEND chunk type + its constant CRC
  • JPEG — SOI marker FF D8, ends with the EOI marker FF D9
  • GIF  — "GIF89a" / "GIF87a", ends with the 00 3B trailer

Anything else in the input is opaque filler.

Exported for the scanner:
  • HEADER_SIGNATURES  — list of (header_bytes, SignatureInfo), priority order
  • ALL_SIGNATURES     — the three SignatureInfo records, priority order
  • SignatureInfo      — lightweight dataclass describing a file type
"""

from dataclasses import dataclass
from typing import Iterable, Optional


FORMAT_PNG = "PNG"
FORMAT_JPG = "JPG"
FORMAT_GIF = "GIF"
FORMAT_OPAQUE = "OPAQUE"

OPAQUE_EXTENSION = "bin"


@dataclass(frozen=True)
class SignatureInfo:
    """Describes one carvable image type."""
    format_tag: str             # "PNG", "JPG" or "GIF"
    extension: str              # file extension without dot
    description: str
    headers: tuple[bytes, ...]  # any of these starts a candidate
    footer: bytes               # terminator literal, included in the carve
    # Window advance for the terminator search. Every format slides one
    # byte at a time; a marker is never assumed to be chunk aligned.
    footer_stride: int = 1
    pillow_format: str = ""     # format name handed to Image.save()

    @property
    def max_header_len(self) -> int:
        return max(len(h) for h in self.headers)


# ── PNG ──
SIG_PNG = SignatureInfo(
    format_tag=FORMAT_PNG, extension="png", description="PNG Image",
    headers=(b"\x89PNG\r\n\x1A\n",),
    footer=b"IEND\xAE\x42\x60\x82",
    pillow_format="PNG",
)

# ── JPEG ──
SIG_JPG = SignatureInfo(
    format_tag=FORMAT_JPG, extension="jpg", description="JPEG Image",
    headers=(b"\xFF\xD8",),
    footer=b"\xFF\xD9",
    pillow_format="JPEG",
)

# ── GIF ──
SIG_GIF = SignatureInfo(
    format_tag=FORMAT_GIF, extension="gif", description="GIF Image",
    headers=(b"GIF89a", b"GIF87a"),
    footer=b"\x00\x3B",
    pillow_format="GIF",
)


# ═════════════════════════════════════════════════════════════
#  HEADER_SIGNATURES — tested in this order at every offset
# ═════════════════════════════════════════════════════════════

ALL_SIGNATURES: list[SignatureInfo] = [SIG_PNG, SIG_JPG, SIG_GIF]

HEADER_SIGNATURES: list[tuple[bytes, SignatureInfo]] = [
    (header, sig) for sig in ALL_SIGNATURES for header in sig.headers
]

_BY_TAG: dict[str, SignatureInfo] = {s.format_tag: s for s in ALL_SIGNATURES}


# ═════════════════════════════════════════════════════════════
#  Convenience helpers
# ═════════════════════════════════════════════════════════════

def get_all_formats() -> list[str]:
    """Return format tags in priority order."""
    return [s.format_tag for s in ALL_SIGNATURES]


def get_signature(tag: str) -> SignatureInfo:
    """Look up a signature by tag or extension ("png", "JPG", "jpeg", ...)."""
    key = tag.strip().upper()
    if key == "JPEG":
        key = FORMAT_JPG
    try:
        return _BY_TAG[key]
    except KeyError:
        raise KeyError(f"Unknown image format: {tag!r}") from None


def resolve_signatures(formats: Optional[Iterable[str]] = None) -> list[SignatureInfo]:
    """Signatures for the requested tags, always in priority order."""
    if formats is None:
        return list(ALL_SIGNATURES)
    wanted = {get_signature(f).format_tag for f in formats}
    return [s for s in ALL_SIGNATURES if s.format_tag in wanted]


def extension_for(tag: str) -> str:
    if tag == FORMAT_OPAQUE:
        return OPAQUE_EXTENSION
    return get_signature(tag).extension


def match_header(
    data,
    offset: int,
    signatures: Optional[list[SignatureInfo]] = None,
) -> Optional[SignatureInfo]:
    """First signature (priority order) whose header starts at `offset`."""
    for sig in signatures if signatures is not None else ALL_SIGNATURES:
        for header in sig.headers:
            if data[offset:offset + len(header)] == header:
                return sig
    return None
