"""wtsnap command line entry point.

Takes a snapshot of the name, class, title and focus state of all open
windows, plus the time since the last user interaction, and writes it to an
SQLite database. Meant to be run from cron or a systemd timer at a fixed
interval, with ``-s`` set to that interval.

Exit status:
    0  snapshot committed
    1  capture failed, nothing committed
    2  invalid command line

Example:
    $ wtsnap -B -s 60
    $ python -m wtsnap.snap -v -f /tmp/test.db
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import CaptureError, __version__
from .config import ConfigManager, SnapshotConfig
from .session import CaptureSession

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid argument -- '{text}'")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive -- '{text}'")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wtsnap",
        description="Snapshot all open X11 windows and the idle time into "
                    "an SQLite database for tracking what you worked on.",
    )
    parser.add_argument("-b", dest="exclude_blanks", action="store_false",
                        help="Include windows without name, class or title (default)")
    parser.add_argument("-B", dest="exclude_blanks", action="store_true",
                        help="Exclude windows without name, class or title")
    parser.add_argument("-d", dest="display", metavar="DISPLAY",
                        help="X display to open (default: $DISPLAY)")
    parser.add_argument("-f", dest="database", metavar="DATABASE_FILE",
                        help="SQLite database to write to (default: ~/.wtsnap.db)")
    parser.add_argument("-s", dest="sample_time", metavar="SAMPLE_TIME", type=positive_int,
                        help="Seconds the snapshot stands for (default: 60)")
    parser.add_argument("-c", dest="config", metavar="CONFIG_FILE",
                        help="YAML config file (default: ~/.config/wtsnap/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    parser.add_argument("--write-config", action="store_true",
                        help="Write a default config file and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.set_defaults(exclude_blanks=None)
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def merge_options(base: SnapshotConfig, args: argparse.Namespace) -> SnapshotConfig:
    """Overlay command-line values that were given onto the file config."""
    overrides = {
        key: getattr(args, key)
        for key in ("database", "display", "sample_time", "exclude_blanks")
        if getattr(args, key) is not None
    }
    return SnapshotConfig(**{**vars(base), **overrides})


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config_mgr = ConfigManager(args.config)
    if args.write_config:
        try:
            created = config_mgr.create_default_file()
        except OSError as e:
            logger.error(f"Can't write config file {config_mgr.path}: {e}")
            return EXIT_FAILURE
        if created:
            print(f"Wrote default configuration to {config_mgr.path}")
        return EXIT_OK

    options = merge_options(config_mgr.config.snapshot, args)
    try:
        snapshot_id = CaptureSession(options).run()
    except CaptureError as e:
        logger.error(f"Snapshot failed: {e}")
        return EXIT_FAILURE

    logger.debug(f"Snapshot {snapshot_id} done")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
