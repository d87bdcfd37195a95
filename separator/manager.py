"""
Separation Manager — Orchestrates carving, saving, merging and reporting.
"""

import os
import csv
import json
import time
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .merge import merge_directory
from .mmap_reader import CarveError, InputBuffer
from .scanner import CarvingScanner
from .segments import MODE_PARTITION, ScanResult
from .signatures import get_all_formats
from .writer import ArtifactRecord, ArtifactWriter

logger = logging.getLogger(__name__)


@dataclass
class CarveSession:
    """One carve run: input file → directory of artifacts."""
    session_id: str
    input_path: str
    output_dir: str
    mode: str = MODE_PARTITION
    keep_raw_binary: bool = False
    formats: list[str] = field(default_factory=get_all_formats)
    start_time: float = 0.0
    end_time: float = 0.0
    input_size: int = 0
    using_mmap: bool = False
    scan_summary: dict = field(default_factory=dict)
    artifacts: list[ArtifactRecord] = field(default_factory=list)
    recovery_log: list[dict] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def duration_human(self) -> str:
        return _fmt_duration(self.duration)

    @property
    def saved(self) -> list[ArtifactRecord]:
        return [a for a in self.artifacts if a.saved]

    @property
    def failed(self) -> list[ArtifactRecord]:
        return [a for a in self.artifacts if not a.saved]

    @property
    def image_count(self) -> int:
        return sum(1 for a in self.artifacts if not a.segment.is_opaque)

    @property
    def summary(self) -> dict:
        return {
            "total_segments": len(self.artifacts),
            "images": self.image_count,
            "saved": len(self.saved),
            "failed": len(self.failed),
            "input_size": _fmt_size(self.input_size),
            "duration": self.duration_human,
            "scan": self.scan_summary,
        }


@dataclass
class MergeSession:
    """One merge run: fragment directory → single file."""
    input_dir: str
    output_path: str
    start_time: float = 0.0
    end_time: float = 0.0
    fragments: list[str] = field(default_factory=list)
    total_bytes: int = 0

    @property
    def duration_human(self) -> str:
        return _fmt_duration(self.end_time - self.start_time)

    @property
    def summary(self) -> dict:
        return {
            "fragments": len(self.fragments),
            "total_size": _fmt_size(self.total_bytes),
            "duration": self.duration_human,
        }


class SeparationManager:
    """High-level entry points for carving and merging."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger
        self.current_session: Optional[CarveSession] = None
        self._on_progress: Optional[Callable] = None
        self._on_artifact: Optional[Callable] = None

    def set_callbacks(self, on_progress=None, on_artifact=None):
        self._on_progress = on_progress
        self._on_artifact = on_artifact

    # ─── Carve ────────────────────────────────────────────────

    def carve(
        self,
        input_path: str,
        output_dir: str,
        keep_raw_binary: bool = False,
        mode: str = MODE_PARTITION,
        formats: Optional[Iterable[str]] = None,
    ) -> CarveSession:
        """
        Carve every recognised image out of `input_path` into `output_dir`.

        Raises CarveError if the output directory cannot be created or the
        input cannot be read. Per-artifact failures are only logged.
        """
        scanner = CarvingScanner(mode=mode, formats=formats, log=self._log)
        if self._on_progress:
            scanner.set_progress_callback(self._on_progress)

        session = CarveSession(
            session_id=f"carve_{int(time.time())}",
            input_path=input_path,
            output_dir=output_dir,
            mode=mode,
            keep_raw_binary=keep_raw_binary,
            formats=[s.format_tag for s in scanner.signatures],
            start_time=time.time(),
        )
        self.current_session = session

        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as exc:
            raise CarveError(f"Cannot create output directory {output_dir}: {exc}") from exc

        writer = ArtifactWriter(output_dir, keep_raw_binary=keep_raw_binary, log=self._log)
        if self._on_artifact:
            writer.set_artifact_callback(self._on_artifact)

        with InputBuffer(input_path) as buf:
            session.input_size = buf.size
            session.using_mmap = buf.using_mmap
            self._log.info("Input: %s (%s%s)", input_path, _fmt_size(buf.size),
                           ", mmap" if buf.using_mmap else "")

            result = scanner.scan(buf.data)
            self._log_counts(result)
            session.scan_summary = result.summary
            session.artifacts = writer.write(result)

        session.recovery_log = writer.get_recovery_log()
        session.end_time = time.time()
        self._log.info("Output directory: %s", output_dir)
        self._log.info("All done! Total: %d (%d saved, %d failed) in %s",
                       len(session.artifacts), len(session.saved),
                       len(session.failed), session.duration_human)
        return session

    def _log_counts(self, result: ScanResult):
        for tag, count in result.count_by_format().items():
            self._log.info("%s: %d", tag.lower(), count)

    # ─── Merge ────────────────────────────────────────────────

    def merge(self, input_dir: str, output_path: str) -> MergeSession:
        """Concatenate every fragment in `input_dir` into `output_path`.

        Raises MergeError on any I/O failure.
        """
        session = MergeSession(
            input_dir=input_dir, output_path=output_path, start_time=time.time())
        session.fragments = merge_directory(input_dir, output_path, log=self._log)
        session.total_bytes = os.path.getsize(output_path)
        session.end_time = time.time()
        self._log.info("Merged %d fragment(s) into %s (%s)",
                       len(session.fragments), output_path,
                       _fmt_size(session.total_bytes))
        return session

    # ─── Reports ──────────────────────────────────────────────

    def export_report_json(self, filepath):
        if not self.current_session:
            return
        s = self.current_session
        report = {
            "session_id": s.session_id,
            "input": s.input_path,
            "output_dir": s.output_dir,
            "date": time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(s.start_time)),
            "mode": s.mode,
            "keep_raw_binary": s.keep_raw_binary,
            "formats": s.formats,
            "summary": s.summary,
            "segments": [
                {
                    "n": a.index + 1,
                    "name": a.name,
                    "format": a.format_tag,
                    "start": a.segment.start,
                    "end": a.segment.end,
                    "size": a.size,
                    "offset_hex": a.segment.offset_hex,
                    "saved": a.saved,
                    "error": a.error,
                }
                for a in s.artifacts
            ],
            "recovery_log": s.recovery_log,
        }
        with open(filepath, "w") as f:
            json.dump(report, f, indent=2, default=str)

    def export_report_csv(self, filepath):
        if not self.current_session:
            return
        with open(filepath, "w", newline="") as f:
            w = csv.writer(f)
            w.writerow([
                "#", "Name", "Format", "Start", "End", "Size",
                "Offset (hex)", "MD5", "Saved", "Error",
            ])
            for a in self.current_session.artifacts:
                w.writerow([
                    a.index + 1, a.name, a.format_tag,
                    a.segment.start, a.segment.end, a.size,
                    a.segment.offset_hex, a.md5, a.saved, a.error,
                ])


def _fmt_size(n: int) -> str:
    s = float(n)
    for u in ("B", "KB", "MB", "GB"):
        if s < 1024:
            return f"{s:.1f} {u}"
        s /= 1024
    return f"{s:.1f} TB"


def _fmt_duration(d: float) -> str:
    if d < 60:
        return f"{d:.1f}s"
    if d < 3600:
        return f"{d / 60:.1f}m"
    return f"{d / 3600:.1f}h"
