from enum import Enum
from typing import Any, Iterable, List, Optional, Protocol, Sequence

from config import TransferOptions
from errors import ProvisionFailure
from report import Report
from target_schema import ColumnDescriptor


class RetryDecision(Enum):
    RETRY = "retry"
    ABORT = "abort"


class RetryPolicy(Protocol):
    def decide(self, attempt: int, error: Exception) -> RetryDecision: ...


class AbortRetryPolicy:
    """ Never retries. Used when nobody is around to answer. """

    def decide(self, attempt: int, error: Exception) -> RetryDecision:
        return RetryDecision.ABORT


class ScriptedRetryPolicy:
    """ Replays a fixed list of decisions, then aborts. """

    def __init__(self, decisions: Iterable[RetryDecision]):
        self.decisions: List[RetryDecision] = list(decisions)
        self.calls: List[int] = []

    def decide(self, attempt: int, error: Exception) -> RetryDecision:
        self.calls.append(attempt)
        if not self.decisions:
            return RetryDecision.ABORT
        return self.decisions.pop(0)


def qualified_table_name(options: TransferOptions) -> str:
    if options.schema:
        return f"{options.schema}.{options.table}"
    return options.table


def tablespace_clause(options: TransferOptions) -> str:
    if options.tablespace:
        return f" TABLESPACE {options.tablespace}"
    return ""


def build_create_table(descriptors: Sequence[ColumnDescriptor], options: TransferOptions) -> str:
    """
    CREATE TABLE [<schema>.]<table> (<col1> <type1>, <col2> <type2>, ...) [TABLESPACE <tablespace>]
    """
    columns = ", ".join(f"{c.name} {c.target_ddl}" for c in descriptors)
    return f"CREATE TABLE {qualified_table_name(options)} ({columns}){tablespace_clause(options)}"


def create_table(
    connection: Any,
    descriptors: Sequence[ColumnDescriptor],
    options: TransferOptions,
    retry_policy: Optional[RetryPolicy] = None,
    report: Optional[Report] = None,
) -> str:
    """ Creates the target table, asking `retry_policy` what to do after each failure.

    A retry re-issues the identical statement. There is no automatic backoff:
    a failed CREATE TABLE is a naming, permission or schema problem that only
    the operator can fix.

    Returns:
        The DDL that was executed.

    Raises:
        ProvisionFailure: the policy chose to abort.
    """
    policy = retry_policy or AbortRetryPolicy()
    report = report or Report()
    sql = build_create_table(descriptors, options)

    attempt = 1
    while True:
        report.info(f"Executing SQL: {sql}")
        try:
            with connection.cursor() as cur:
                cur.execute(sql)
            report.success(f"Created table {qualified_table_name(options)}")
            return sql
        except Exception as e:
            report.error("Unable to create an Oracle table to store the results of the source query.", e)
            if policy.decide(attempt, e) is not RetryDecision.RETRY:
                raise ProvisionFailure(
                    f'Unable to create the Oracle table "{qualified_table_name(options)}": {e}',
                    stage="creating target table",
                    reported=True,
                ) from e
            attempt += 1
