"""wtstats - sum snapshot sample time per classification.

The classification file holds the body of an SQLite CASE expression, e.g.::

    when name = 'code-oss' and title like '%wtsnap%'
    then 'Worktracker Development'

    when class = 'firefox' and title like '%Hacker News%'
    then 'News Reading'

    when show_uncategorized and title is not null
    then '*** ' || title

    else null

The expression is evaluated against every window on the focus path of each
snapshot (rows with ``focused != 0``). The deepest window that yields a
non-NULL result decides the snapshot's classification. Snapshots whose idle
time reaches the threshold are left out, as are unclassified ones.

The database is opened read-only.

Example:
    $ wtstats today
    $ wtstats -u -i 300 "last week"
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from . import CaptureError
from .config import ConfigError, ConfigManager, StatsConfig, resolve_database_path
from .storage import SnapshotStore
from .timeparser import TimeParser

logger = logging.getLogger(__name__)

REPORT_QUERY = """
    WITH options AS (
        SELECT :show_uncategorized AS show_uncategorized
    ),
    classified AS (
        SELECT snapshot_id, depth,
               CASE
{rule}
               END AS classification
        FROM window CROSS JOIN options
        WHERE focused != 0
    ),
    chosen AS (
        SELECT c.snapshot_id, c.classification
        FROM classified c
        WHERE c.classification IS NOT NULL
          AND c.depth = (SELECT MAX(c2.depth) FROM classified c2
                         WHERE c2.snapshot_id = c.snapshot_id
                           AND c2.classification IS NOT NULL)
    )
    SELECT ch.classification AS classification,
           SUM(s.sample_time) AS seconds,
           COUNT(*) AS snapshots
    FROM chosen ch
    JOIN snapshot s ON s.snapshot_id = ch.snapshot_id
    WHERE (s.idle_time IS NULL OR s.idle_time < :idle_threshold_ms)
      AND substr(s.timestamp, 1, 19) BETWEEN :start_ts AND :end_ts
    GROUP BY ch.classification
    ORDER BY seconds DESC, ch.classification
"""

EARLIEST = '0000-01-01T00:00:00'
LATEST = '9999-12-31T23:59:59'


def load_classification(path: str) -> str:
    """Read a classification file.

    Raises:
        ConfigError: If the file can't be read or is empty
    """
    path = Path(path).expanduser()
    try:
        rule = path.read_text()
    except OSError as e:
        raise ConfigError(f"Can't read classification file {path}: {e}") from e
    if not rule.strip():
        raise ConfigError(f"Classification file {path} is empty")
    return rule


def summarize(store: SnapshotStore, rule: str, start: str = EARLIEST, end: str = LATEST,
              idle_threshold_ms: int = 180000,
              show_uncategorized: bool = False) -> List[Dict]:
    """Total sample time per classification.

    Args:
        store: Open SnapshotStore
        rule: Body of the CASE expression
        start: Earliest UTC timestamp, 'YYYY-MM-DDTHH:MM:SS' (inclusive)
        end: Latest UTC timestamp, same format (inclusive)
        idle_threshold_ms: Snapshots idle this long or longer are skipped
        show_uncategorized: Bound to ``show_uncategorized`` in the rule

    Returns:
        Dicts with classification, seconds and snapshots, largest first

    Raises:
        StorageError: If the query fails, e.g. because the rule is invalid SQL
    """
    # The rule goes on its own lines so a trailing -- comment can't swallow END.
    sql = REPORT_QUERY.format(rule="\n" + rule + "\n")
    return store.query(sql, {
        'show_uncategorized': int(show_uncategorized),
        'idle_threshold_ms': idle_threshold_ms,
        'start_ts': start,
        'end_ts': end,
    })


def format_duration(seconds: int) -> str:
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:d}:{minutes:02d}:{secs:02d}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wtstats",
        description="Sum the time recorded by wtsnap per classification.",
    )
    parser.add_argument("range", nargs="?",
                        help="Time range, e.g. 'today', 'last week', '2026-10-01 to 2026-10-07' "
                             "(default: everything)")
    parser.add_argument("-f", dest="database", metavar="DATABASE_FILE",
                        help="SQLite database to read (default: ~/.wtsnap.db)")
    parser.add_argument("-k", dest="classification_file", metavar="CLASSIFICATION_FILE",
                        help="Classification rules (default: ~/.wtclass.sql)")
    parser.add_argument("-i", dest="idle_threshold", metavar="SECONDS", type=int,
                        help="Skip snapshots idle at least this long (default: 180)")
    parser.add_argument("-u", dest="show_uncategorized", action="store_true", default=None,
                        help="Set show_uncategorized to true in the rules")
    parser.add_argument("-c", dest="config", metavar="CONFIG_FILE",
                        help="YAML config file (default: ~/.config/wtsnap/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = ConfigManager(args.config).config
    overrides = {
        key: value for key, value in (
            ("classification_file", args.classification_file),
            ("idle_threshold_seconds", args.idle_threshold),
            ("show_uncategorized", args.show_uncategorized),
        ) if value is not None
    }
    stats_config = StatsConfig(**{**vars(config.stats), **overrides})

    start, end = EARLIEST, LATEST
    if args.range:
        parser = TimeParser()
        try:
            start, end = parser.utc_bounds(*parser.parse(args.range))
        except ValueError as e:
            logger.error(str(e))
            return 1

    try:
        stats_config.validate()
        rule = load_classification(stats_config.classification_file)
        db_path = resolve_database_path(args.database or config.snapshot.database)
        with SnapshotStore(db_path, read_only=True) as store:
            rows = summarize(store, rule, start, end,
                             idle_threshold_ms=stats_config.idle_threshold_seconds * 1000,
                             show_uncategorized=stats_config.show_uncategorized)
    except CaptureError as e:
        logger.error(str(e))
        return 1

    total = 0
    for row in rows:
        total += row['seconds']
        print(f"{format_duration(row['seconds']):>10}  {row['classification']}")
    print(f"{format_duration(total):>10}  total")
    return 0


if __name__ == "__main__":
    sys.exit(main())
