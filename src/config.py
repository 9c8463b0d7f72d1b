from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import yaml
from pathlib import Path

from errors import ConfigurationError

DEFAULT_INSERT_BATCH_SIZE = 500
DEFAULT_COMMIT_BATCH_COUNT = 20

@dataclass
class SourceCfg:
    dsn: Optional[str] = None
    driver: str = "postgres"   # postgres | oracle
    user: Optional[str] = None
    password: Optional[str] = None

@dataclass
class OracleCfg:
    dsn: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    schema: str = ""
    table: str = ""
    tablespace: str = ""

@dataclass
class TransferCfg:
    query: Optional[str] = None
    query_file: Optional[str] = None
    insert_batch_size: int = DEFAULT_INSERT_BATCH_SIZE
    commit_batch_count: int = DEFAULT_COMMIT_BATCH_COUNT
    prefetch: bool = False

@dataclass
class OutputCfg:
    report_md: str = "report.md"

@dataclass
class Config:
    source: SourceCfg = field(default_factory=SourceCfg)
    oracle: OracleCfg = field(default_factory=OracleCfg)
    transfer: TransferCfg = field(default_factory=TransferCfg)
    output: OutputCfg = field(default_factory=OutputCfg)

@dataclass(frozen=True)
class TransferOptions:
    """
    Fully resolved settings for one transfer run. Read-only to the engine.

    Attributes:
        table: Oracle table to create (e.g., 'SALES_2011').
        query: Source query whose result set is copied.
        schema: Optional Oracle schema the table is created within.
        tablespace: Optional Oracle tablespace for the new table.
        insert_batch_size: Rows per executemany() call.
        commit_batch_count: Batch inserts performed between commits.
        prefetch: Fetch the next source page while the current one is inserted.
    """
    table: str
    query: str
    schema: str = ""
    tablespace: str = ""
    insert_batch_size: int = DEFAULT_INSERT_BATCH_SIZE
    commit_batch_count: int = DEFAULT_COMMIT_BATCH_COUNT
    prefetch: bool = False

    def validate(self) -> "TransferOptions":
        if not (self.table or "").strip():
            raise ConfigurationError('The "oracle table" option must be supplied.', stage="validating options")
        if not (self.query or "").strip():
            raise ConfigurationError("A source query must be provided.", stage="validating options")
        if self.insert_batch_size < 1:
            raise ConfigurationError(
                f"insert_batch_size must be at least 1 (got {self.insert_batch_size}).", stage="validating options")
        if self.commit_batch_count < 1:
            raise ConfigurationError(
                f"commit_batch_count must be at least 1 (got {self.commit_batch_count}).", stage="validating options")
        return self

def _section(data: Dict[str, Any], name: str, cls):
    values = data.get(name) or {}
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' section in config: {e}") from e

def load_config(path: str) -> Config:
    try:
        data = yaml.safe_load(Path(path).read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Unable to load the config file named \"{path}\": {e}") from e
    return Config(
        source=_section(data, "source", SourceCfg),
        oracle=_section(data, "oracle", OracleCfg),
        transfer=_section(data, "transfer", TransferCfg),
        output=_section(data, "output", OutputCfg),
    )

def read_query(cfg: TransferCfg) -> str:
    """ Returns the query text, loading it from `query_file` when no inline query was given. """
    if cfg.query and cfg.query.strip():
        return cfg.query
    if not cfg.query_file:
        raise ConfigurationError(
            "A source query must be provided.\n"
            "Please specify one of the following options:\n"
            "\t--query\n"
            "\t--query-file")
    try:
        return Path(cfg.query_file).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Unable to load the query file named \"{cfg.query_file}\": {e}") from e

def build_options(cfg: Config, require_target: bool = True) -> TransferOptions:
    """ Checks the compulsory settings and freezes them into TransferOptions.

    `require_target=False` skips the Oracle connection settings (dry runs).
    """
    required = [(cfg.source.dsn, "source dsn"), (cfg.oracle.table, "oracle table")]
    if require_target:
        required += [(cfg.oracle.dsn, "oracle dsn"), (cfg.oracle.user, "oracle user")]
    for value, name in required:
        if not value:
            raise ConfigurationError(f'The "{name}" option must be supplied.', stage="validating options")
    if cfg.source.driver not in ("postgres", "oracle"):
        raise ConfigurationError(f"Unknown source driver: {cfg.source.driver!r} (expected postgres or oracle)")
    try:
        batch_size = int(cfg.transfer.insert_batch_size)
        commit_count = int(cfg.transfer.commit_batch_count)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Batch settings must be whole numbers: {e}", stage="validating options") from e
    return TransferOptions(
        table=cfg.oracle.table,
        query=read_query(cfg.transfer),
        schema=cfg.oracle.schema or "",
        tablespace=cfg.oracle.tablespace or "",
        insert_batch_size=batch_size,
        commit_batch_count=commit_count,
        prefetch=bool(cfg.transfer.prefetch),
    ).validate()
