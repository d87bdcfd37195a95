"""
Artifact Writer — one output file per carved segment.

Two output modes:
  • raw      — the byte range is dumped verbatim (exact, merge-safe)
  • re-encode — the range is decoded with Pillow and saved again in the
               format implied by its tag (PNG / JPEG / GIF)

OPAQUE segments have no image format and are always dumped raw.

Every artifact is written to "<name>.part" and renamed into place, so a
failed segment leaves no file behind. Failures are per segment: they are
logged with the artifact name, recorded, and the batch continues.
"""

import io
import os
import time
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image

from .segments import ScanResult, Segment
from .signatures import get_signature

logger = logging.getLogger(__name__)

# Recovered images are trusted input; large dimensions are legitimate.
Image.MAX_IMAGE_PIXELS = None

PARTIAL_SUFFIX = ".part"


@dataclass
class ArtifactRecord:
    """Outcome of writing one segment."""
    index: int                      # position in the scan result (from 0)
    name: str
    path: str
    segment: Segment
    saved: bool = False
    reencoded: bool = False
    error: str = ""
    md5: str = ""

    @property
    def format_tag(self) -> str:
        return self.segment.format_tag

    @property
    def size(self) -> int:
        return self.segment.size


class ArtifactWriter:
    """Serialises a ScanResult into an existing output directory."""

    def __init__(
        self,
        output_dir: str,
        keep_raw_binary: bool = False,
        log: Optional[logging.Logger] = None,
    ):
        self.output_dir = output_dir
        self.keep_raw_binary = keep_raw_binary
        self._log = log or logger
        self._on_artifact: Optional[Callable] = None
        self._recovery_log: list[dict] = []

    def set_artifact_callback(self, cb):
        self._on_artifact = cb

    def get_recovery_log(self) -> list[dict]:
        return list(self._recovery_log)

    def write(self, result: ScanResult) -> list[ArtifactRecord]:
        records = []
        for i, (name, seg) in enumerate(result.named_segments()):
            rec = ArtifactRecord(
                index=i, name=name,
                path=os.path.join(self.output_dir, name),
                segment=seg,
            )
            self._write_one(rec)
            records.append(rec)
            self._log_recovery(rec)
            if self._on_artifact:
                self._on_artifact(rec)

        saved = sum(1 for r in records if r.saved)
        if saved < len(records):
            self._log.warning("Wrote %d/%d artifact(s) to %s",
                              saved, len(records), self.output_dir)
        else:
            self._log.debug("Wrote %d artifact(s) to %s", saved, self.output_dir)
        return records

    # ─── Per-segment output ───────────────────────────────────

    def _write_one(self, rec: ArtifactRecord):
        seg = rec.segment
        tmp = rec.path + PARTIAL_SUFFIX
        try:
            if self.keep_raw_binary or seg.is_opaque:
                self._dump_raw(seg, tmp)
            else:
                self._reencode(seg, tmp)
                rec.reencoded = True
            os.replace(tmp, rec.path)
        except Exception as e:
            rec.error = f"{type(e).__name__}: {e}"
            rec.reencoded = False
            self._log.error("Failed to write %s (%s at %s): %s",
                            rec.name, seg.format_tag, seg.offset_hex, rec.error)
            remove_partial(tmp, self._log)
            return

        rec.saved = True
        rec.md5 = seg.md5()
        self._log.info("%s", rec.name)

    @staticmethod
    def _dump_raw(seg: Segment, path: str):
        with open(path, "wb") as f, seg.view() as view:
            f.write(view)

    @staticmethod
    def _reencode(seg: Segment, path: str):
        sig = get_signature(seg.format_tag)
        with Image.open(io.BytesIO(seg.tobytes())) as img:
            img.load()
            img.save(path, format=sig.pillow_format)

    # ─── Logging ──────────────────────────────────────────────

    def _log_recovery(self, rec: ArtifactRecord):
        self._recovery_log.append({
            "file_number": rec.index + 1,
            "name": rec.name,
            "format": rec.format_tag,
            "offset": rec.segment.start,
            "offset_hex": rec.segment.offset_hex,
            "size": rec.size,
            "size_human": rec.segment.size_human,
            "md5": rec.md5,
            "reencoded": rec.reencoded,
            "saved_to": rec.path if rec.saved else "",
            "error": rec.error,
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
        })


def remove_partial(path: str, log: logging.Logger):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning("Could not remove partial file %s: %s", path, e)
