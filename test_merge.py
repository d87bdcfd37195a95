"""
Test the reassembler and the carve → merge round trip.
"""
import json
import os
import random
import shutil
import tempfile
from unittest import mock

import pytest

from separator.manager import SeparationManager
from separator.merge import MergeError, list_fragments, merge_directory
from separator.mmap_reader import CarveError
from separator.writer import PARTIAL_SUFFIX

SCENARIO = (
    b"\x89PNG\r\n\x1a\n" + b"\x00" * 10 + b"IEND\xaeB\x60\x82"
    + b"\xFF\xD8" + b"\x00" * 3 + b"\xFF\xD9"
)


def _write(path, data):
    with open(path, "wb") as f:
        f.write(data)


def _read(path):
    with open(path, "rb") as f:
        return f.read()


def test_merge_sorted_by_path():
    print("── Test: merge sorted by path ──")
    tmpdir = tempfile.mkdtemp(prefix="test_merge_")
    try:
        frag = os.path.join(tmpdir, "frags")
        os.makedirs(os.path.join(frag, "nested"))
        _write(os.path.join(frag, "image_010.bin"), b"C")
        _write(os.path.join(frag, "image_002.jpg"), b"B")
        _write(os.path.join(frag, "image_001.png"), b"A")
        _write(os.path.join(frag, "nested", "image_000.bin"), b"ignored")

        out = os.path.join(tmpdir, "merged.bin")
        order = merge_directory(frag, out)
        assert [os.path.basename(p) for p in order] == [
            "image_001.png", "image_002.jpg", "image_010.bin"]
        assert _read(out) == b"ABC"
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_merge_truncates_existing_output():
    print("── Test: merge truncates existing output ──")
    tmpdir = tempfile.mkdtemp(prefix="test_trunc_")
    try:
        frag = os.path.join(tmpdir, "frags")
        os.makedirs(frag)
        _write(os.path.join(frag, "a"), b"new")
        out = os.path.join(tmpdir, "out.bin")
        _write(out, b"old content that is longer")
        merge_directory(frag, out)
        assert _read(out) == b"new"
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_merge_empty_directory():
    print("── Test: merge empty directory ──")
    tmpdir = tempfile.mkdtemp(prefix="test_empty_")
    try:
        frag = os.path.join(tmpdir, "frags")
        os.makedirs(frag)
        out = os.path.join(tmpdir, "sub", "out.bin")
        assert merge_directory(frag, out) == []
        assert os.path.getsize(out) == 0
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_merge_output_inside_input_dir():
    print("── Test: merge output inside input dir ──")
    tmpdir = tempfile.mkdtemp(prefix="test_inside_")
    try:
        _write(os.path.join(tmpdir, "image_001.bin"), b"xy")
        out = os.path.join(tmpdir, "output.bin")
        _write(out, b"stale")
        assert len(list_fragments(tmpdir, exclude=out)) == 1
        merge_directory(tmpdir, out)
        assert _read(out) == b"xy"
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_merge_failures_are_fatal():
    print("── Test: merge failures are fatal ──")
    tmpdir = tempfile.mkdtemp(prefix="test_fatal_")
    try:
        with pytest.raises(MergeError, match="fragment directory"):
            merge_directory(os.path.join(tmpdir, "missing"), os.path.join(tmpdir, "o.bin"))

        frag = os.path.join(tmpdir, "frags")
        os.makedirs(frag)
        _write(os.path.join(frag, "a"), b"1")
        # Output path is an existing directory
        with pytest.raises(MergeError, match="output file"):
            merge_directory(frag, tmpdir)
        assert not os.path.exists(tmpdir + PARTIAL_SUFFIX)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_failed_copy_leaves_no_output():
    print("── Test: failed copy leaves no output ──")
    tmpdir = tempfile.mkdtemp(prefix="test_partial_")
    try:
        frag = os.path.join(tmpdir, "frags")
        os.makedirs(frag)
        _write(os.path.join(frag, "image_001.png"), b"AAAA")
        _write(os.path.join(frag, "image_002.bin"), b"BBBB")
        out = os.path.join(tmpdir, "out.bin")

        real_copy = shutil.copyfileobj
        calls = []

        def copy_then_fail(src, dst, length=0):
            calls.append(src.name)
            if len(calls) == 2:
                raise OSError(5, "Input/output error")
            return real_copy(src, dst, length)

        with mock.patch("separator.merge.shutil.copyfileobj", copy_then_fail):
            with pytest.raises(MergeError, match="image_002.bin"):
                merge_directory(frag, out)

        assert len(calls) == 2
        assert not os.path.exists(out)
        assert not os.path.exists(out + PARTIAL_SUFFIX)

        # An earlier good merge survives a later failed one
        merge_directory(frag, out)
        with mock.patch("separator.merge.shutil.copyfileobj",
                        side_effect=OSError(28, "No space left on device")):
            with pytest.raises(MergeError):
                merge_directory(frag, out)
        assert _read(out) == b"AAAABBBB"
        assert sorted(os.listdir(tmpdir)) == ["frags", "out.bin"]
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


# ── Round trip ──────────────────────────────────────────────────

def test_scenario_round_trip():
    print("── Test: carve → merge round trip ──")
    tmpdir = tempfile.mkdtemp(prefix="test_roundtrip_")
    try:
        src = os.path.join(tmpdir, "image.bin")
        _write(src, SCENARIO)
        out_dir = os.path.join(tmpdir, "output")
        merged = os.path.join(tmpdir, "output.bin")

        manager = SeparationManager()
        session = manager.carve(src, out_dir, keep_raw_binary=True)
        assert session.input_size == 33
        assert sorted(os.listdir(out_dir)) == ["image_001.png", "image_002.jpg"]
        assert os.path.getsize(os.path.join(out_dir, "image_001.png")) == 26
        assert os.path.getsize(os.path.join(out_dir, "image_002.jpg")) == 7

        merge = manager.merge(out_dir, merged)
        assert merge.total_bytes == 33
        assert _read(merged) == SCENARIO
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_round_trip_on_noise():
    print("── Test: round trip on noise ──")
    rng = random.Random(7)
    markers = [b"\x89PNG\r\n\x1a\n", b"IEND\xaeB\x60\x82", b"\xFF\xD8", b"\xFF\xD9",
               b"GIF89a", b"\x00\x3B"]
    pieces = []
    for _ in range(400):
        if rng.random() < 0.3:
            pieces.append(rng.choice(markers))
        else:
            pieces.append(bytes(rng.randrange(256) for _ in range(rng.randrange(1, 30))))
    data = b"".join(pieces)

    tmpdir = tempfile.mkdtemp(prefix="test_noise_")
    try:
        src = os.path.join(tmpdir, "noise.bin")
        _write(src, data)
        out_dir = os.path.join(tmpdir, "output")
        merged = os.path.join(tmpdir, "merged.bin")

        manager = SeparationManager()
        session = manager.carve(src, out_dir, keep_raw_binary=True)
        assert not session.failed
        assert session.image_count > 0
        manager.merge(out_dir, merged)
        assert _read(merged) == data
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_empty_input_round_trip():
    print("── Test: empty input round trip ──")
    tmpdir = tempfile.mkdtemp(prefix="test_empty_input_")
    try:
        src = os.path.join(tmpdir, "empty.bin")
        _write(src, b"")
        out_dir = os.path.join(tmpdir, "output")

        manager = SeparationManager()
        session = manager.carve(src, out_dir, keep_raw_binary=True)
        assert session.artifacts == []
        assert os.path.isdir(out_dir)
        assert os.listdir(out_dir) == []

        merged = os.path.join(tmpdir, "output.bin")
        manager.merge(out_dir, merged)
        assert os.path.getsize(merged) == 0
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_carve_fatal_errors():
    print("── Test: carve fatal errors ──")
    tmpdir = tempfile.mkdtemp(prefix="test_carve_fatal_")
    try:
        manager = SeparationManager()
        with pytest.raises(CarveError, match="nope.bin"):
            manager.carve(os.path.join(tmpdir, "nope.bin"), os.path.join(tmpdir, "out"))

        # Output "directory" is an existing file
        blocker = os.path.join(tmpdir, "blocker")
        _write(blocker, b"x")
        src = os.path.join(tmpdir, "in.bin")
        _write(src, SCENARIO)
        with pytest.raises(CarveError, match="output directory"):
            manager.carve(src, blocker)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def test_reports():
    print("── Test: reports ──")
    tmpdir = tempfile.mkdtemp(prefix="test_report_")
    try:
        src = os.path.join(tmpdir, "image.bin")
        _write(src, b"pad" + SCENARIO)
        manager = SeparationManager()
        manager.carve(src, os.path.join(tmpdir, "out"), keep_raw_binary=True)

        json_path = os.path.join(tmpdir, "report.json")
        manager.export_report_json(json_path)
        with open(json_path) as f:
            report = json.load(f)
        assert report["mode"] == "partition"
        assert report["summary"]["total_segments"] == 3
        assert report["summary"]["images"] == 2
        assert [s["format"] for s in report["segments"]] == ["OPAQUE", "PNG", "JPG"]
        assert report["segments"][1]["start"] == 3
        assert len(report["recovery_log"]) == 3

        csv_path = os.path.join(tmpdir, "report.csv")
        manager.export_report_csv(csv_path)
        with open(csv_path) as f:
            lines = f.read().splitlines()
        assert lines[0].startswith("#,Name,Format")
        assert len(lines) == 4
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


def main():
    print("=" * 60)
    print("  Reassembler — Test Suite")
    print("=" * 60)
    tests = [(name, fn) for name, fn in sorted(globals().items())
             if name.startswith("test_") and callable(fn)]
    for name, fn in tests:
        fn()
        print(f"  ✅ {name}: PASS")
    print("=" * 60)
    print(f"  ALL {len(tests)} TESTS PASSED ✅")
    print("=" * 60)


if __name__ == "__main__":
    main()
