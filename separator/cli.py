"""
Image Separator — Command-line interface.

Usage:
    python main.py dump.bin                        # carve, re-encode images
    python main.py dump.bin --keep_raw_bin         # carve, raw byte dumps
    python main.py dump.bin --mode single          # one pass per format
    python main.py ./output --merge                # fragments → output.bin
"""

APP_VERSION = "1.0.0"

import os
import logging
import argparse

from .manager import SeparationManager
from .merge import MergeError
from .mmap_reader import CarveError
from .segments import MODE_PARTITION, SCAN_MODES
from .signatures import get_signature

logger = logging.getLogger("separator")

DEFAULT_OUTPUT_DIR = "output"
DEFAULT_MERGE_FILE = "output.bin"

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _parse_bool(value: str) -> bool:
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def _parse_formats(value: str) -> list[str]:
    formats = []
    for part in value.split(","):
        if not part.strip():
            continue
        try:
            formats.append(get_signature(part).format_tag)
        except KeyError as e:
            raise argparse.ArgumentTypeError(str(e.args[0])) from None
    if not formats:
        raise argparse.ArgumentTypeError("no formats given")
    return formats


def resolve_tristate(value) -> bool:
    """Unset → False, bare flag → True, explicit value → that value."""
    if value is None:
        return False
    return bool(value)


def default_output(merge: bool) -> str:
    name = DEFAULT_MERGE_FILE if merge else DEFAULT_OUTPUT_DIR
    return os.path.join(os.getcwd(), name)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="separating_image",
        description="Carve PNG/JPG/GIF images out of a binary blob, "
                    "or merge carved fragments back into one file.")
    parser.add_argument("cmd", metavar="INPUT",
                        help="Input file (carve) or fragment directory (merge)")
    parser.add_argument("-o", "--output", default="",
                        help="Output directory (carve) or file (merge); "
                             "default ./output or ./output.bin")
    parser.add_argument("--keep_raw_bin", "--keep-raw-bin", dest="keep_raw_binary",
                        nargs="?", const=True, default=None, type=_parse_bool,
                        metavar="BOOL",
                        help="Dump raw bytes instead of re-encoding images")
    parser.add_argument("--merge", nargs="?", const=True, default=None,
                        type=_parse_bool, metavar="BOOL",
                        help="Concatenate the files of INPUT directory")
    parser.add_argument("--mode", choices=SCAN_MODES, default=MODE_PARTITION,
                        help="partition: every byte in exactly one file "
                             "(default); single: one pass per format, images only")
    parser.add_argument("--formats", type=_parse_formats, default=None,
                        metavar="LIST", help="Comma list of png,jpg,gif (default all)")
    parser.add_argument("--report", default="", metavar="FILE",
                        help="Write a carve report (.json or .csv)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {APP_VERSION}")
    return parser


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def run(args) -> int:
    merge = resolve_tristate(args.merge)
    keep_raw_binary = resolve_tristate(args.keep_raw_binary)
    output = args.output or default_output(merge)
    manager = SeparationManager()

    if merge:
        manager.merge(args.cmd, output)
        return 0

    manager.carve(
        args.cmd, output,
        keep_raw_binary=keep_raw_binary,
        mode=args.mode,
        formats=args.formats,
    )
    if args.report:
        if args.report.lower().endswith(".csv"):
            manager.export_report_csv(args.report)
        else:
            manager.export_report_json(args.report)
        logger.info("Report: %s", args.report)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return run(args)
    except (CarveError, MergeError) as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        # Report writing and other late I/O
        logger.error("I/O error: %s", e)
        return 1

