from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Any, Callable, List, Optional, Sequence, Tuple

from config import TransferOptions
from errors import ExternalTermination, TransferError, TransferFailure
from paging import PagedCursor
from report import Report
from target_schema import ColumnDescriptor
from type_map import TargetType
from apply_ddl import qualified_table_name

ORA_SESSION_KILLED = 28  # ORA-00028: your session has been killed

_PLACEHOLDERS = {
    "qmark": lambda i: "?",
    "numeric": lambda i: f":{i}",
    "named": lambda i: f":{i}",   # oracledb binds ':1, :2' positionally
    "format": lambda i: "%s",
    "pyformat": lambda i: "%s",
}


@dataclass
class TransferCounters:
    """
    Running totals for one transfer. Times are in seconds.

    Attributes:
        rows_processed: Rows read from the source and handed to the target.
        query_time: Time spent executing the source query.
        fetch_time: Time spent fetching source rows and binding them.
        insert_time: Time spent in executemany() on the target.
        batches_executed: Number of executemany() calls that succeeded.
        commits: Number of commits issued, the final one included.
    """
    rows_processed: int = 0
    query_time: float = 0.0
    fetch_time: float = 0.0
    insert_time: float = 0.0
    batches_executed: int = 0
    commits: int = 0


class LoaderState(Enum):
    BINDING = "binding"
    BATCH_FULL = "batch_full"
    EXECUTING = "executing"
    COMMIT_DUE = "commit_due"
    DONE = "done"
    FAILED = "failed"


def render_insert(descriptors: Sequence[ColumnDescriptor], options: TransferOptions, paramstyle: str = "qmark") -> str:
    """
    INSERT INTO [<schema>.]<table> (<col1>,<col2>,...) VALUES (?,?,...)

    `paramstyle` is the target driver's DB-API paramstyle; oracledb uses ':1,:2'.
    """
    try:
        placeholder = _PLACEHOLDERS[paramstyle]
    except KeyError:
        raise ValueError(f"Unsupported paramstyle: {paramstyle!r}") from None
    cols = ",".join(c.name for c in descriptors)
    params = ",".join(placeholder(i) for i in range(1, len(descriptors) + 1))
    return f"INSERT INTO {qualified_table_name(options)} ({cols}) VALUES ({params})"


def _oracle_error_code(ex: BaseException) -> Optional[int]:
    # oracledb wraps an _Error object carrying `code` as the first argument.
    if ex.args:
        code = getattr(ex.args[0], "code", None)
        if code is not None:
            return code
    return getattr(ex, "code", None)


def session_was_killed(exc: BaseException) -> bool:
    """ True if ORA-00028 appears anywhere in the exception chain. """
    seen = set()
    ex: Optional[BaseException] = exc
    while ex is not None and id(ex) not in seen:
        seen.add(id(ex))
        if _oracle_error_code(ex) == ORA_SESSION_KILLED:
            return True
        ex = ex.__cause__ or ex.__context__
    return False


def _number_value(v: Any) -> Any:
    if isinstance(v, bool):
        return int(v)
    return v


def _identity(v: Any) -> Any:
    return v


class BatchLoader:
    """
    Streams rows from a PagedCursor into the target with executemany().

    States: BINDING -> BATCH_FULL -> EXECUTING -> COMMIT_DUE -> BINDING,
    ending in DONE or FAILED.

        - Each row is bound positionally (descriptor i -> parameter i+1).
        - Every `insert_batch_size` rows the batch is executed.
        - Every `commit_batch_count` batches the transaction is committed.
        - At end of data the partial batch is executed and one final commit
          is always issued.

    A failed batch is never retried: rows already consumed from the source
    cursor cannot be read again. The transaction is rolled back (best-effort)
    and the run stops.
    """

    def __init__(
        self,
        connection: Any,
        insert_sql: str,
        descriptors: Sequence[ColumnDescriptor],
        options: TransferOptions,
        report: Optional[Report] = None,
        counters: Optional[TransferCounters] = None,
    ) -> None:
        self.connection = connection
        self.insert_sql = insert_sql
        self.descriptors = list(descriptors)
        self.options = options.validate()
        self.report = report or Report()
        self.counters = counters if counters is not None else TransferCounters()
        self.state = LoaderState.BINDING

        self._converters: List[Callable[[Any], Any]] = [
            _number_value if d.target_type is TargetType.NUMBER else _identity for d in self.descriptors
        ]
        self._batch: List[Tuple[Any, ...]] = []
        self._batches_since_commit = 0
        self._commit_cycles = 0

    # Public APIs

    def load(self, rows: PagedCursor) -> TransferCounters:
        """ Drain `rows` into the target table.

        Returns:
            The counters, once everything has been committed.

        Raises:
            ExternalTermination: the Oracle session was killed by a third party.
            TransferFailure: any other fetch/insert/commit error.
        """
        rows.set_page_size(self.options.insert_batch_size)
        try:
            with self.connection.cursor() as cur:
                self._drain(cur, rows)
        except Exception as e:
            raise self._fail(e) from e
        finally:
            self.report.info(f"Number of rows obtained from source: {self.counters.rows_processed}")
        return self.counters

    # State machine

    def _drain(self, cur: Any, rows: PagedCursor) -> None:
        start = perf_counter()
        while rows.next():
            self._bind(rows.current_row())
            self.counters.fetch_time += perf_counter() - start

            if self.state is LoaderState.BATCH_FULL:
                self._execute(cur)
            if self.state is LoaderState.COMMIT_DUE:
                self._commit()
                self.report.info(
                    "Number of rows inserted so far: "
                    f"{self._commit_cycles * self.options.insert_batch_size * self.options.commit_batch_count}")
            start = perf_counter()

        if self._batch:
            self._execute(cur)
        self._commit()
        self.state = LoaderState.DONE

    def _bind(self, row: Sequence[Any]) -> None:
        self.state = LoaderState.BINDING
        values = tuple(conv(row[i]) for i, conv in enumerate(self._converters))
        self._batch.append(values)
        self.counters.rows_processed += 1
        if len(self._batch) >= self.options.insert_batch_size:
            self.state = LoaderState.BATCH_FULL

    def _execute(self, cur: Any) -> None:
        self.state = LoaderState.EXECUTING
        start = perf_counter()
        cur.executemany(self.insert_sql, self._batch)
        self.counters.insert_time += perf_counter() - start
        self.counters.batches_executed += 1
        self._batch = []
        self._batches_since_commit += 1
        if self._batches_since_commit >= self.options.commit_batch_count:
            self.state = LoaderState.COMMIT_DUE
        else:
            self.state = LoaderState.BINDING

    def _commit(self) -> None:
        self.connection.commit()
        self.counters.commits += 1
        self._commit_cycles += 1
        self._batches_since_commit = 0
        self.state = LoaderState.BINDING

    # Failure handling

    def _fail(self, err: Exception) -> TransferError:
        failed_in = self.state
        self.state = LoaderState.FAILED
        # rows bound into the batch that never made it to the target
        self.counters.rows_processed -= len(self._batch)
        self._batch = []

        if session_was_killed(err):
            self.report.log_report(
                "\n*********************************************************"
                "\nThe Oracle session in use has been killed by a 3rd party."
                "\n*********************************************************", fg="yellow")
            result: TransferError = ExternalTermination(
                f"The Oracle session was killed by a third party: {err}",
                stage="loading rows", counters=self.counters, reported=True)
        else:
            self.report.error(
                "An error occurred within the process of fetching source rows "
                f"and inserting them into an Oracle table (while {failed_in.value}).", err)
            result = TransferFailure(
                f"Transfer failed while {failed_in.value}: {err}",
                stage="loading rows", counters=self.counters, reported=True)

        try:
            self.connection.rollback()
        except Exception:
            # best-effort; the primary failure is what gets reported
            pass
        return result
