# separator — Image carving & fragment reassembly engine.
# Pure-Python signature scan over a resident binary blob.
#
# Architecture (bottom → top):
#   signatures   — PNG / JPG / GIF header and terminator markers
#   boundary     — header / terminator search over the buffer
#   segments     — Segment + ScanResult, artifact naming schemes
#   scanner      — Carving scanner (full-partition or single-type mode)
#   mmap_reader  — Read-only input buffer (mmap with read() fallback)
#   writer       — Artifact writer (raw dump or Pillow re-encode)
#   merge        — Fragment directory → single file
#   manager      — Orchestrator (carve, merge, reports)
#   cli          — argparse front end (main.py, separating-image)
