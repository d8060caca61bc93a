"""End-to-end capture runs against a fake display and a real SQLite file."""

import pytest
from conftest import FakeConnection, window_properties

from wtsnap.config import ConfigError, SnapshotConfig
from wtsnap.session import CaptureSession
from wtsnap.storage import SnapshotStore, StorageError
from wtsnap.xconn import DisplayOpenError


class Recorder:
    """Connection factory returning one prepared FakeConnection."""

    def __init__(self, conn):
        self.conn = conn
        self.names = []

    def __call__(self, name):
        self.names.append(name)
        return self.conn


def run(conn, db_path, **options):
    connect = Recorder(conn)
    options.setdefault("database", db_path)
    snapshot_id = CaptureSession(SnapshotConfig(**options), connect=connect).run()
    return snapshot_id, connect


def load(db_path):
    with SnapshotStore(db_path, read_only=True) as store:
        snapshots = store.get_snapshots()
        windows = {s['snapshot_id']: store.get_windows(s['snapshot_id']) for s in snapshots}
    return snapshots, windows


def test_capture_commits_one_snapshot(scenario_conn, db_path):
    snapshot_id, connect = run(scenario_conn, db_path, display=":1", sample_time=300)

    snapshots, windows = load(db_path)
    assert [s['snapshot_id'] for s in snapshots] == [snapshot_id]
    assert snapshots[0]['sample_time'] == 300
    assert snapshots[0]['idle_time'] == 1234
    focused = {w['window_id']: w['focused'] for w in windows[snapshot_id]}
    assert focused == {1: 3, 10: 3, 20: 3, 30: 0}
    assert connect.names == [":1"]
    assert scenario_conn.closed


def test_stored_tree_is_consistent(scenario_conn, db_path):
    snapshot_id, _ = run(scenario_conn, db_path)
    _, windows = load(db_path)
    rows = {w['window_id']: w for w in windows[snapshot_id]}

    assert rows[1]['depth'] == 1 and rows[1]['parent_id'] is None
    for row in rows.values():
        if row['parent_id'] in rows:
            assert rows[row['parent_id']]['depth'] == row['depth'] - 1
    assert rows[20]['name'] == "code-oss"
    assert rows[20]['class'] == "Code"


def test_repeated_runs_append_snapshots(scenario_conn, db_path):
    first, _ = run(scenario_conn, db_path)
    second, _ = run(FakeConnection(tree={1: [2]}, focus=2), db_path)

    snapshots, windows = load(db_path)
    assert [s['snapshot_id'] for s in snapshots] == [first, second]
    assert len(windows[first]) == 4
    assert len(windows[second]) == 2


def test_blank_exclusion(db_path):
    conn = FakeConnection(tree={1: [2, 3]}, properties={3: window_properties("x", "X")})
    snapshot_id, _ = run(conn, db_path, exclude_blanks=True)
    _, windows = load(db_path)
    assert [w['window_id'] for w in windows[snapshot_id]] == [3]


def test_degraded_probes_still_commit(db_path):
    conn = FakeConnection(tree={1: [2]}, screensaver=False, broken={2})
    snapshot_id, _ = run(conn, db_path)
    snapshots, windows = load(db_path)
    assert snapshots[0]['idle_time'] == 0
    assert len(windows[snapshot_id]) == 2


def test_insert_failure_rolls_back_everything(db_path):
    # Window 5 shows up twice, so the second insert violates the primary key.
    conn = FakeConnection(tree={1: [5, 2], 2: [5]})
    with pytest.raises(StorageError):
        run(conn, db_path)

    snapshots, windows = load(db_path)
    assert snapshots == []
    assert windows == {}
    with SnapshotStore(db_path, read_only=True) as store:
        assert store.query("SELECT COUNT(*) AS n FROM window") == [{'n': 0}]
    assert conn.closed


def test_earlier_snapshots_survive_a_failed_run(scenario_conn, db_path):
    first, _ = run(scenario_conn, db_path)
    with pytest.raises(StorageError):
        run(FakeConnection(tree={1: [5, 5]}), db_path)
    snapshots, _ = load(db_path)
    assert [s['snapshot_id'] for s in snapshots] == [first]


def test_display_failure_leaves_no_snapshot(db_path):
    def refuse(name):
        raise DisplayOpenError("Can't open default display")

    with pytest.raises(DisplayOpenError):
        CaptureSession(SnapshotConfig(database=db_path), connect=refuse).run()
    snapshots, _ = load(db_path)
    assert snapshots == []


def test_invalid_sample_time(db_path, scenario_conn):
    with pytest.raises(ConfigError, match="sample_time"):
        run(scenario_conn, db_path, sample_time=0)


def test_missing_home_without_database(monkeypatch, scenario_conn):
    monkeypatch.delenv("HOME", raising=False)
    with pytest.raises(ConfigError, match="HOME not set"):
        CaptureSession(SnapshotConfig(), connect=Recorder(scenario_conn)).run()


def test_default_database_under_home(monkeypatch, tmp_path, scenario_conn):
    monkeypatch.setenv("HOME", str(tmp_path))
    CaptureSession(SnapshotConfig(), connect=Recorder(scenario_conn)).run()
    assert (tmp_path / ".wtsnap.db").exists()


def test_teardown_order(db_path):
    events = []

    class TracingConnection(FakeConnection):
        def __exit__(self, *exc):
            events.append("display closed")
            return super().__exit__(*exc)

    class TracingStore(SnapshotStore):
        def _rollback(self):
            events.append("rollback")
            super()._rollback()

        def close(self):
            if self.connection is not None:
                events.append("store closed")
            super().close()

    conn = TracingConnection(tree={1: [4, 4]})
    with pytest.raises(StorageError):
        CaptureSession(SnapshotConfig(database=db_path), connect=Recorder(conn),
                       store_factory=TracingStore).run()
    assert events == ["rollback", "display closed", "store closed"]
