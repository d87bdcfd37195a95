"""
Reassembler — concatenate a fragment directory back into one file.

Inverse of a raw full-partition carve: image_001.png, image_002.bin, ...
sort lexicographically in numeric order because indices are zero-padded,
so concatenating them in path order rebuilds the original input.

Unlike the artifact writer, every failure here is fatal. The output is
built as "<output>.part" and renamed into place only once every fragment
has been copied. A failed merge leaves no partial file behind and any
existing output untouched.
"""

import os
import shutil
import logging
from typing import Optional

from .writer import PARTIAL_SUFFIX, remove_partial

logger = logging.getLogger(__name__)

COPY_CHUNK = 1024 * 1024


class MergeError(RuntimeError):
    """Fatal merge failure; the message names the offending path."""


def list_fragments(input_dir: str, exclude: Optional[str] = None) -> list[str]:
    """Regular files directly inside `input_dir`, sorted by full path."""
    try:
        with os.scandir(input_dir) as it:
            entries = [e.path for e in it if e.is_file()]
    except OSError as exc:
        raise MergeError(f"Cannot read fragment directory {input_dir}: {exc}") from exc

    if exclude is not None:
        skip = os.path.abspath(exclude)
        entries = [p for p in entries if os.path.abspath(p) != skip]
    return sorted(entries)


def merge_directory(
    input_dir: str,
    output_path: str,
    log: Optional[logging.Logger] = None,
) -> list[str]:
    """
    Write the concatenation of every fragment in `input_dir` to `output_path`.

    The bytes go to `output_path` + ".part", which replaces any existing
    output only after the last fragment is copied. If the output lives
    inside `input_dir` it is not treated as a fragment. Returns the fragment
    paths in the order they were written.
    """
    log = log or logger
    fragments = list_fragments(input_dir, exclude=output_path)
    log.debug("Merging %d fragment(s) from %s", len(fragments), input_dir)

    tmp = output_path + PARTIAL_SUFFIX
    parent = os.path.dirname(os.path.abspath(output_path))
    try:
        os.makedirs(parent, exist_ok=True)
        out = open(tmp, "wb")
    except OSError as exc:
        raise MergeError(f"Cannot create output file {output_path}: {exc}") from exc

    try:
        with out:
            for path in fragments:
                _append_fragment(path, out, output_path)
                log.info("%s", os.path.basename(path))
        os.replace(tmp, output_path)
    except MergeError:
        remove_partial(tmp, log)
        raise
    except OSError as exc:
        remove_partial(tmp, log)
        raise MergeError(f"Cannot write output file {output_path}: {exc}") from exc

    return fragments


def _append_fragment(path: str, out, output_path: str):
    try:
        src = open(path, "rb")
    except OSError as exc:
        raise MergeError(f"Cannot read fragment {path}: {exc}") from exc
    with src:
        try:
            shutil.copyfileobj(src, out, COPY_CHUNK)
        except OSError as exc:
            raise MergeError(
                f"Failed copying fragment {path} into {output_path}: {exc}"
            ) from exc
