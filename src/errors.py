from typing import Optional


class TransferError(Exception):
    """ Base class for every fatal condition raised by the transfer engine.

    Attributes:
        stage: Name of the step that failed (e.g. 'creating target table').
        counters: TransferCounters at the moment of failure, when known.
        exit_code: Process status the CLI exits with.
        reported: True once the raising layer has already logged the failure.
    """
    exit_code = 1

    def __init__(self, message: str, *, stage: Optional[str] = None, counters=None, reported: bool = False):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.counters = counters
        self.reported = reported


class TransferFailure(TransferError):
    """ Insert/commit path error. Rolled back best-effort, never retried. """
    exit_code = 1


class ConfigurationError(TransferError):
    exit_code = 2


class UnsupportedType(TransferError):
    """ A source column type has no Oracle mapping. Raised before any DDL. """
    exit_code = 3

    def __init__(self, type_name: str, column: Optional[str] = None):
        msg = f"Unsupported source type: {type_name}"
        if column:
            msg += f" (column {column!r})"
        super().__init__(msg, stage="reading source column metadata")
        self.type_name = type_name
        self.column = column


class ProvisionFailure(TransferError):
    exit_code = 4


class ExternalTermination(TransferError):
    """ The Oracle session was killed by a third party mid-transfer. """
    exit_code = 5
