from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, List, Optional

from apply_ddl import RetryPolicy, build_create_table, create_table
from config import TransferOptions
from data_loader import BatchLoader, TransferCounters, render_insert
from errors import TransferError, TransferFailure
from paging import PagedCursor, open_paged_cursor
from report import Report
from target_schema import ColumnDescriptor, synthesize


@dataclass
class TransferPlan:
    descriptors: List[ColumnDescriptor]
    create_sql: str
    insert_sql: str


def plan_transfer(source_cursor: Any, options: TransferOptions, paramstyle: str = "qmark") -> TransferPlan:
    """ Statements the transfer would run for an already executed source cursor. """
    descriptors = synthesize(source_cursor.description)
    return TransferPlan(
        descriptors=descriptors,
        create_sql=build_create_table(descriptors, options),
        insert_sql=render_insert(descriptors, options, paramstyle),
    )


def _execute_query(source_cursor: Any, options: TransferOptions, counters: TransferCounters, report: Report) -> None:
    report.info(f"Running: {options.query}")
    start = perf_counter()
    source_cursor.execute(options.query)
    counters.query_time = perf_counter() - start


def summary(counters: TransferCounters, total_time: float) -> str:
    return (
        "\n\n********************************************************************\n"
        f"\tTotal time                          : {total_time:.3f} sec.\n"
        f"\tNumber of records processed         : {counters.rows_processed}\n"
        f"\tTime spent executing source query   : {counters.query_time:.3f} sec.\n"
        f"\tTime spent fetching source data     : {counters.fetch_time:.3f} sec.\n"
        f"\tTime spent inserting into Oracle    : {counters.insert_time:.3f} sec."
    )


def run_transfer(
    source_cursor: Any,
    target_connection: Any,
    options: TransferOptions,
    *,
    retry_policy: Optional[RetryPolicy] = None,
    report: Optional[Report] = None,
    paramstyle: str = "qmark",
) -> TransferCounters:
    """
    Copy the result of `options.query` into a new Oracle table.

    Steps: execute query -> derive columns -> CREATE TABLE (with retry)
    -> render INSERT -> batch load.

    Args:
        source_cursor: Unexecuted DB-API cursor on the source connection.
        target_connection: Open Oracle connection, autocommit off.
        options: Resolved TransferOptions.
        retry_policy: Decides whether a failed CREATE TABLE is retried.
        report: Where progress is logged.
        paramstyle: DB-API paramstyle of the target driver.

    Returns:
        TransferCounters for the completed run.

    Raises:
        TransferError: any failure, already logged with the stage it happened in.
            `exit_code` on the error is the process status to exit with.
    """
    report = report or Report()
    started = perf_counter()
    counters = TransferCounters()
    paged: Optional[PagedCursor] = None
    stage = "validating options"
    try:
        options.validate()

        stage = "executing source query"
        _execute_query(source_cursor, options, counters, report)

        stage = "reading source column metadata"
        descriptors = synthesize(source_cursor.description)

        stage = "creating target table"
        create_table(target_connection, descriptors, options, retry_policy, report)

        stage = "rendering insert statement"
        insert_sql = render_insert(descriptors, options, paramstyle)
        report.info(f"INSERT SQL:\n{insert_sql}")

        stage = "loading rows"
        paged = open_paged_cursor(source_cursor, options.insert_batch_size, options.prefetch, report)
        BatchLoader(target_connection, insert_sql, descriptors, options, report, counters).load(paged)
    except TransferError as e:
        e.stage = e.stage or stage
        if e.counters is None:
            e.counters = counters
        if not e.reported:
            report.error(f"Transfer failed while {e.stage}: {e}")
        raise
    except Exception as e:
        report.error(f"An unexpected error occurred while {stage}.", e)
        raise TransferFailure(f"Transfer failed while {stage}: {e}", stage=stage, counters=counters) from e
    finally:
        if paged is not None:
            paged.close()

    report.success(summary(counters, perf_counter() - started))
    return counters
