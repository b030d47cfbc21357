import threading
from datetime import datetime, timezone

from service import logging_utils


def test_activity_record_is_redacted_and_stamped():
    rec = {"op": "run_start", "headers": {"Authorization": "Bearer abc"}, "at": datetime(2025, 1, 1, tzinfo=timezone.utc)}
    logging_utils.write_activity_log(rec)

    (row,) = logging_utils.read_records(logging_utils.get_activity_log_path())
    assert row["op"] == "run_start"
    assert row["headers"]["Authorization"] == "***REDACTED***"
    assert row["at"].startswith("2025-01-01")
    assert set(row["_meta"]) == {"host", "pid", "thread"}
    # caller's dict untouched
    assert rec["headers"]["Authorization"] == "Bearer abc"


def test_concurrent_writers_produce_whole_lines():
    def _write(i):
        for j in range(50):
            logging_utils.write_error_log({"op": "job_task", "worker": i, "seq": j})

    threads = [threading.Thread(target=_write, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    rows = logging_utils.read_records(logging_utils.get_error_log_path())
    assert len(rows) == 400
    assert {(r["worker"], r["seq"]) for r in rows} == {(i, j) for i in range(8) for j in range(50)}


def test_size_rotation(monkeypatch):
    monkeypatch.setenv("ACTIVITY_LOG_MAX_BYTES", "200")
    for i in range(10):
        logging_utils.write_activity_log({"op": "summary", "n": i, "pad": "x" * 50})
    path = logging_utils.get_activity_log_path()
    assert len(logging_utils.read_records(path)) < 10
