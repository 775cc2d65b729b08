"""Tests for results, state and alert models."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from renterd_integrity.errors import ErrorKind, IntegrityMismatch, PartialFailure, StoreTimeout
from renterd_integrity.models import ALERT_SOURCE, MAX_RESULTS, Alert, CycleError, Result, Severity, State

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_result(started_at=T0, complete=True, error=None, **kwargs):
    return Result(
        started_at=started_at,
        ended_at=started_at + timedelta(minutes=5),
        dataset_complete=complete,
        error=error,
        **kwargs,
    )


class TestCycleError:
    """Test the persisted error form."""

    def test_str_is_kind_and_message(self):
        err = CycleError(kind=ErrorKind.TIMEOUT, message="upload timed out")
        assert str(err) == "timeout: upload timed out"

    def test_parse_round_trip(self):
        err = CycleError(kind=ErrorKind.INTEGRITY_MISMATCH, message="hash mismatch for file 'x'")
        assert CycleError.parse(str(err)) == err

    def test_parse_untagged_text(self):
        err = CycleError.parse("something odd: happened")
        assert err.kind is ErrorKind.STORE_ERROR
        assert err.message == "something odd: happened"

    def test_from_exception(self):
        err = CycleError.from_exception(IntegrityMismatch("data/a.data", "aa", "bb"))
        assert err.kind is ErrorKind.INTEGRITY_MISMATCH
        assert "expected 'aa', got 'bb'" in err.message

    def test_from_partial_failure_uses_cause_kind(self):
        err = CycleError.from_exception(PartialFailure(StoreTimeout("upload timed out"), added=10))
        assert err.kind is ErrorKind.TIMEOUT

    def test_from_os_error(self):
        assert CycleError.from_exception(OSError("disk full")).kind is ErrorKind.LOCAL_IO

    def test_from_exception_with_context(self):
        err = CycleError.from_exception(StoreTimeout("upload timed out"), context="failed to ensure dataset")
        assert str(err) == "timeout: failed to ensure dataset; upload timed out"


class TestResult:
    """Test Result serialization."""

    def test_json_uses_camel_case_keys(self):
        result = make_result(uploaded="1024 bytes (1.0 KiB)", upload_speed_mbps=1.5, prune_elapsed=2.5)
        data = result.to_json_dict()

        assert data["startedAt"].startswith("2024-05-01T12:00:00")
        assert data["uploaded"] == "1024 bytes (1.0 KiB)"
        assert data["uploadSpeedMBPS"] == 1.5
        assert data["pruneElapsedTime"] == 2.5
        assert data["datasetComplete"] is True
        assert "error" not in data

    def test_error_serialized_as_text(self):
        result = make_result(error=CycleError(kind=ErrorKind.TIMEOUT, message="too slow"))
        assert result.to_json_dict()["error"] == "timeout: too slow"
        assert not result.ok

    def test_parses_persisted_form(self):
        result = Result.model_validate({
            "startedAt": "2024-05-01T12:00:00Z",
            "endedAt": "2024-05-01T12:05:00Z",
            "datasetComplete": False,
            "error": "store_error: failed to ensure dataset; boom",
        })
        assert result.error.kind is ErrorKind.STORE_ERROR
        assert result.error.message == "failed to ensure dataset; boom"
        assert not result.dataset_complete

    def test_empty_error_is_success(self):
        result = Result.model_validate({"startedAt": T0, "endedAt": T0, "error": ""})
        assert result.ok


class TestState:
    """Test the rolling results window."""

    def test_empty_state_is_ok(self):
        state = State()
        assert state.ok
        assert state.results == []

    def test_record_prepends(self):
        state = State()
        first = make_result(started_at=T0)
        second = make_result(started_at=T0 + timedelta(hours=1))
        state.record(first)
        state.record(second)
        assert state.results == [second, first]

    def test_window_capped_newest_first(self):
        state = State()
        for i in range(MAX_RESULTS + 5):
            state.record(make_result(started_at=T0 + timedelta(hours=i)))

        assert len(state.results) == MAX_RESULTS
        assert state.results[0].started_at == T0 + timedelta(hours=MAX_RESULTS + 4)
        assert state.results[-1].started_at == T0 + timedelta(hours=5)

    def test_ok_reflects_retained_results_only(self):
        state = State()
        state.record(make_result(error=CycleError(kind=ErrorKind.TIMEOUT, message="x")))
        assert not state.ok

        for i in range(MAX_RESULTS):
            state.record(make_result(started_at=T0 + timedelta(hours=i + 1)))
        assert state.ok

    def test_time_since_last_complete(self):
        state = State()
        assert state.time_since_last_complete(T0) is None

        state.record(make_result(started_at=T0))
        assert state.time_since_last_complete(T0 + timedelta(minutes=30)) == timedelta(minutes=30)

    def test_incomplete_latest_result_is_due_now(self):
        state = State()
        state.record(make_result(started_at=T0))
        state.record(make_result(started_at=T0 + timedelta(minutes=1), complete=False))
        assert state.time_since_last_complete(T0 + timedelta(minutes=2)) is None


class TestAlert:
    """Test alert construction from results."""

    def test_success_is_info(self):
        alert = Alert.for_result(make_result())
        assert alert.severity is Severity.INFO
        assert alert.data["source"] == ALERT_SOURCE
        assert alert.data["result"]["datasetComplete"] is True
        assert "error" not in alert.data

    def test_integrity_mismatch_is_critical(self):
        error = CycleError(kind=ErrorKind.INTEGRITY_MISMATCH, message="hash mismatch for file 'x'")
        alert = Alert.for_result(make_result(error=error))
        assert alert.severity is Severity.CRITICAL
        assert alert.message == "hash mismatch for file 'x'"
        assert alert.data["error"] == {"kind": "integrity_mismatch", "message": "hash mismatch for file 'x'"}

    def test_other_failures_are_info(self):
        error = CycleError(kind=ErrorKind.TIMEOUT, message="too slow")
        assert Alert.for_result(make_result(error=error)).severity is Severity.INFO

    def test_ids_are_random_32_bytes(self):
        a = Alert.for_result(make_result())
        b = Alert.for_result(make_result())
        assert a.id != b.id
        assert len(a.id) == 64
