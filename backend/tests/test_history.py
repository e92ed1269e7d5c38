"""History Recorder Tests"""
from uuid import uuid4

import pytest

from mtfoundry.models.schemas import ExecutionStats, MRResult
from mtfoundry.services.simulation.errors import HistoryEntryNotFoundError
from mtfoundry.services.simulation.history import HistoryRecorder


def _stats(passed: int, failed: int) -> ExecutionStats:
    stats = ExecutionStats(
        passed=passed,
        failed=failed,
        mr_results={"Rotation": MRResult(passed=passed, failed=failed)},
    )
    stats.recompute()
    return stats


class TestHistoryRecorder:
    """HistoryRecorder 单元测试"""

    def test_record_freezes_stats(self):
        recorder = HistoryRecorder()
        key = uuid4()
        stats = _stats(9, 1)

        entry = recorder.record(key, stats)
        stats.mr_results["Rotation"].passed = 0

        assert (entry.total_tests, entry.passed, entry.failed, entry.success_rate) == (10, 9, 1, 90)
        assert entry.mr_results["Rotation"].passed == 9
        assert recorder.entries(key) == [entry]

    def test_entries_keep_insertion_order(self):
        recorder = HistoryRecorder()
        key = uuid4()
        first = recorder.record(key, _stats(1, 0))
        second = recorder.record(key, _stats(0, 1))
        assert [e.id for e in recorder.entries(key)] == [first.id, second.id]

    def test_entries_for_unknown_key(self):
        recorder = HistoryRecorder()
        assert recorder.entries(uuid4()) == []
        assert recorder.entries(None) == []

    def test_get_missing_entry(self):
        recorder = HistoryRecorder()
        with pytest.raises(HistoryEntryNotFoundError):
            recorder.get(uuid4(), uuid4())

    def test_delete_returns_only_deleted_ids(self):
        recorder = HistoryRecorder()
        key = uuid4()
        a = recorder.record(key, _stats(1, 0))
        b = recorder.record(key, _stats(2, 0))

        deleted = recorder.delete(key, [a.id, uuid4()])

        assert deleted == [a.id]
        assert recorder.entries(key) == [b]
        assert recorder.delete(key, [a.id]) == []

    def test_drop_suite(self):
        recorder = HistoryRecorder()
        key = uuid4()
        recorder.record(key, _stats(1, 0))
        recorder.record(key, _stats(1, 0))
        assert recorder.drop_suite(key) == 2
        assert recorder.entries(key) == []

    def test_rekey_moves_transient_history(self):
        recorder = HistoryRecorder()
        temp = recorder.mint_transient_key()
        entry = recorder.record(temp, _stats(3, 1))
        suite_id = uuid4()

        recorder.rekey(temp, suite_id)

        assert recorder.entries(suite_id) == [entry]
        assert recorder.entries(temp) == []
        assert not recorder.is_transient(temp)

    def test_export_excludes_transient_and_load_keeps_it(self):
        recorder = HistoryRecorder()
        temp = recorder.mint_transient_key()
        saved = uuid4()
        transient_entry = recorder.record(temp, _stats(1, 0))
        saved_entry = recorder.record(saved, _stats(0, 1))

        exported = recorder.export()
        assert exported == {saved: [saved_entry]}

        recorder.load({})
        assert recorder.entries(saved) == []
        assert recorder.entries(temp) == [transient_entry]
