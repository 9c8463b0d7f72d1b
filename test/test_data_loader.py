import math

import pytest

from data_loader import BatchLoader, LoaderState, TransferCounters, render_insert, session_was_killed
from errors import ExternalTermination, TransferFailure
from fakes import DESCRIPTION, FakeDatabaseError, FakeSourceCursor, FakeTargetConnection, make_rows
from paging import NativePagedCursor
from target_schema import synthesize

INSERT = "INSERT INTO HIVE_RESULTS (id,name,score) VALUES (?,?,?)"


def run_loader(rows, options, report, conn=None, description=DESCRIPTION):
    conn = conn or FakeTargetConnection()
    descriptors = synthesize(description)
    loader = BatchLoader(conn, render_insert(descriptors, options), descriptors, options, report)
    paged = NativePagedCursor(FakeSourceCursor(description, rows), options.insert_batch_size)
    return loader, conn, paged


def test_render_insert_shapes(options):
    descriptors = synthesize(DESCRIPTION)
    assert render_insert(descriptors, options()) == INSERT
    assert render_insert(descriptors, options(schema="S"), "named") == \
        "INSERT INTO S.HIVE_RESULTS (id,name,score) VALUES (:1,:2,:3)"
    assert render_insert(descriptors, options(), "format").endswith("VALUES (%s,%s,%s)")
    with pytest.raises(ValueError):
        render_insert(descriptors, options(), "bogus")


@pytest.mark.parametrize("rows, batch, commit_count", [
    (1, 2, 1), (7, 3, 1), (7, 3, 2), (10, 4, 5), (1205, 500, 20), (1205, 500, 3), (999, 10, 7),
])
def test_batch_and_commit_counts(options, report, rows, batch, commit_count):
    opts = options(insert_batch_size=batch, commit_batch_count=commit_count)
    loader, conn, paged = run_loader(make_rows(rows), opts, report)
    counters = loader.load(paged)

    executions = math.ceil(rows / batch)
    assert counters.batches_executed == len(conn.batches) == executions
    assert counters.commits == conn.commits == math.ceil(executions / commit_count)
    assert counters.rows_processed == rows
    assert conn.committed == make_rows(rows)
    assert loader.state is LoaderState.DONE


def test_exact_multiple_still_gets_final_commit(options, report):
    opts = options(insert_batch_size=5, commit_batch_count=2)
    loader, conn, paged = run_loader(make_rows(20), opts, report)
    counters = loader.load(paged)
    assert counters.batches_executed == 4
    # two periodic commits plus the unconditional final one
    assert counters.commits == 3
    assert conn.committed == make_rows(20)


def test_progress_is_logged_per_commit_cycle(options, report):
    opts = options(insert_batch_size=2, commit_batch_count=2)
    loader, conn, paged = run_loader(make_rows(9), opts, report)
    loader.load(paged)
    assert "Number of rows inserted so far: 4" in report.report
    assert "Number of rows inserted so far: 8" in report.report
    assert "Number of rows obtained from source: 9" in report.report


def test_binds_booleans_as_numbers(options, report):
    description = [("flag", "BOOLEAN_TYPE"), ("label", "STRING_TYPE")]
    loader, conn, paged = run_loader([(True, "a"), (False, "b"), (None, "c")], options(), report,
                                     description=description)
    loader.load(paged)
    assert conn.committed == [(1, "a"), (0, "b"), (None, "c")]
    assert type(conn.committed[0][0]) is int


def test_shares_counters_with_caller(options, report):
    counters = TransferCounters(query_time=1.5)
    descriptors = synthesize(DESCRIPTION)
    conn = FakeTargetConnection()
    loader = BatchLoader(conn, INSERT, descriptors, options(), report, counters)
    assert loader.load(NativePagedCursor(FakeSourceCursor(DESCRIPTION, make_rows(3)))) is counters
    assert counters.query_time == 1.5
    assert counters.rows_processed == 3


def test_generic_failure_rolls_back(options, report):
    opts = options(insert_batch_size=10, commit_batch_count=5)
    loader, conn, paged = run_loader(make_rows(35), opts, report, FakeTargetConnection(fail_on_batch=3))
    with pytest.raises(TransferFailure) as info:
        loader.load(paged)
    assert conn.rollbacks == 1
    assert loader.state is LoaderState.FAILED
    assert info.value.counters.rows_processed == 20
    assert info.value.exit_code == 1
    assert "[ERR]" in report.report


def test_session_killed_is_external_termination(options, report):
    opts = options(insert_batch_size=500, commit_batch_count=20)
    conn = FakeTargetConnection(fail_on_batch=2, batch_error_code=28)
    loader, conn, paged = run_loader(make_rows(1205), opts, report, conn)
    with pytest.raises(ExternalTermination) as info:
        loader.load(paged)
    assert conn.rollbacks == 1
    assert info.value.counters.rows_processed == 500
    assert "killed by a 3rd party" in report.report


def test_rollback_failure_is_swallowed(options, report):
    conn = FakeTargetConnection(fail_on_batch=1, fail_rollback=True)
    loader, conn, paged = run_loader(make_rows(3), options(insert_batch_size=2), report, conn)
    with pytest.raises(TransferFailure) as info:
        loader.load(paged)
    assert isinstance(info.value.__cause__, FakeDatabaseError)
    assert conn.rollbacks == 1


def test_commit_failure_is_a_transfer_failure(options, report):
    loader, conn, paged = run_loader(make_rows(3), options(), report, FakeTargetConnection(fail_commit=True))
    with pytest.raises(TransferFailure):
        loader.load(paged)
    assert conn.rollbacks == 1


def test_short_source_row_fails(options, report):
    loader, conn, paged = run_loader([(1, "a")], options(), report)
    with pytest.raises(TransferFailure):
        loader.load(paged)
    assert conn.batch_attempts == []


def test_session_was_killed_walks_the_chain():
    try:
        try:
            raise FakeDatabaseError(28)
        except FakeDatabaseError as e:
            raise RuntimeError("wrapped") from e
    except RuntimeError as outer:
        assert session_was_killed(outer)
    assert not session_was_killed(FakeDatabaseError(942))
    assert not session_was_killed(ValueError("plain"))
