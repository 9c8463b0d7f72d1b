from __future__ import annotations
from importlib.metadata import PackageNotFoundError, version as dist_version
from typing import Any, Optional, Tuple
import typer

import oracledb
import psycopg

import config as cf
from apply_ddl import RetryDecision, qualified_table_name
from errors import ConfigurationError, TransferError, TransferFailure
from report import Report
from transfer import plan_transfer, run_transfer

PRODUCT_NAME = "query2ora data transporter"
SERVER_CURSOR_NAME = "query2ora_source"

app = typer.Typer(add_completion=False, help="Copy the result of a query into a new Oracle table.")


def get_version() -> str:
    try:
        return dist_version("query2ora")
    except PackageNotFoundError:
        return ""


def show_welcome_message(report: Report) -> None:
    msg = f"Using {PRODUCT_NAME} {get_version()}".rstrip()
    border = "*" * (len(msg) + 8)
    report.info(f"\n{border}\n*** {msg} ***\n{border}")


class ConsoleRetryPolicy:
    """ Asks the operator whether a failed CREATE TABLE should be attempted again. """

    def __init__(self, table_name: str):
        self.table_name = table_name

    def decide(self, attempt: int, error: Exception) -> RetryDecision:
        try:
            retry = typer.confirm(f'\nWould you like to retry creating the Oracle table "{self.table_name}"?')
        except typer.Abort:
            return RetryDecision.ABORT
        return RetryDecision.RETRY if retry else RetryDecision.ABORT


# Connections

def connect_source(src: cf.SourceCfg, report: Report) -> Tuple[Any, Any]:
    """ Returns (connection, cursor). Postgres sources get a server-side cursor so rows are streamed. """
    try:
        if src.driver == "oracle":
            conn = oracledb.connect(user=src.user, password=src.password, dsn=src.dsn)
            return conn, conn.cursor()
        conn = psycopg.connect(src.dsn)
        return conn, conn.cursor(name=SERVER_CURSOR_NAME)
    except (oracledb.Error, psycopg.Error) as e:
        report.error(f"Unable to connect to the {src.driver} source at \"{src.dsn}\".", e)
        raise TransferFailure(f"Unable to connect to the source: {e}", stage="connecting to source") from e


def connect_oracle(ora: cf.OracleCfg, report: Report) -> Any:
    try:
        return oracledb.connect(user=ora.user, password=ora.password, dsn=ora.dsn)
    except oracledb.Error as e:
        report.error(f"Unable to connect to Oracle at \"{ora.dsn}\" as user \"{ora.user}\".", e)
        raise TransferFailure(f"Unable to connect to Oracle: {e}", stage="connecting to Oracle") from e


def initialize_oracle_session(conn: Any, options: cf.TransferOptions, report: Report) -> None:
    """ Best-effort: tag the session so DBAs can see who is loading what. """
    try:
        conn.module = PRODUCT_NAME
        conn.action = qualified_table_name(options)
    except oracledb.Error as e:
        report.error(f"An error occurred while initializing the Oracle session: {e}")


def _close(resource: Any) -> None:
    try:
        resource.close()
    except Exception:
        pass


# Option handling

def resolve_config(
    config_file: Optional[str],
    overrides: dict,
) -> cf.Config:
    """ Loads `config_file` (if any) and applies every CLI value that was actually given.

    --query and --query-file replace each other: whichever the command line
    names wins over either one from the config file.
    """
    cfg = cf.load_config(config_file) if config_file else cf.Config()
    if overrides.get(("transfer", "query")) is not None:
        cfg.transfer.query_file = None
    elif overrides.get(("transfer", "query_file")) is not None:
        cfg.transfer.query = None
    for (section, key), value in overrides.items():
        if value is not None:
            setattr(getattr(cfg, section), key, value)
    return cfg


def _ensure_passwords(cfg: cf.Config, dry_run: bool) -> None:
    if not dry_run and cfg.oracle.password is None:
        cfg.oracle.password = typer.prompt(
            f"Enter the password for the Oracle database at {cfg.oracle.dsn}", hide_input=True)
    if cfg.source.driver == "oracle" and cfg.source.user and cfg.source.password is None:
        cfg.source.password = typer.prompt(
            f"Enter the password for the source database at {cfg.source.dsn}", hide_input=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{PRODUCT_NAME} {get_version()}".rstrip())
        raise typer.Exit()


@app.command()
def transfer(
    source_dsn: Optional[str] = typer.Option(None, help="Source DSN (postgresql://... or host:port/service)"),
    source_driver: Optional[str] = typer.Option(None, help="Source driver: postgres (default) or oracle"),
    source_user: Optional[str] = typer.Option(None, help="Source user (oracle sources)"),
    source_password: Optional[str] = typer.Option(None, help="Source password (oracle sources)"),
    query: Optional[str] = typer.Option(None, help="The query to execute against the source"),
    query_file: Optional[str] = typer.Option(None, help="File containing the query to execute"),
    oracle_dsn: Optional[str] = typer.Option(None, help="host:port/service or EZCONNECT"),
    oracle_user: Optional[str] = typer.Option(None, help="The Oracle user name"),
    oracle_password: Optional[str] = typer.Option(None, help="The Oracle password (prompted when omitted)"),
    oracle_schema: Optional[str] = typer.Option(None, help="The Oracle schema to create the table within"),
    oracle_table: Optional[str] = typer.Option(None, help="The name of the Oracle table to create"),
    oracle_tablespace: Optional[str] = typer.Option(None, help="The Oracle tablespace to create the table within"),
    insert_batch_size: Optional[int] = typer.Option(None, help="Rows to batch-insert into Oracle at one time"),
    commit_batch_count: Optional[int] = typer.Option(None, help="Batch-inserts to perform before each Oracle commit"),
    prefetch: Optional[bool] = typer.Option(None, "--prefetch/--no-prefetch", help="Fetch the next source page while inserting"),
    dry_run: bool = typer.Option(False, help="Print the CREATE TABLE and INSERT statements without running them"),
    config: Optional[str] = typer.Option(None, help="YAML config file; command-line options take precedence"),
    report_file: Optional[str] = typer.Option(None, help="Where to write the run report (default report.md)"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit"),
):
    """
    Run a query against the source and copy its result set into a new Oracle table.
    """
    overrides = {
        ("source", "dsn"): source_dsn,
        ("source", "driver"): source_driver,
        ("source", "user"): source_user,
        ("source", "password"): source_password,
        ("transfer", "query"): query,
        ("transfer", "query_file"): query_file,
        ("transfer", "insert_batch_size"): insert_batch_size,
        ("transfer", "commit_batch_count"): commit_batch_count,
        ("transfer", "prefetch"): prefetch,
        ("oracle", "dsn"): oracle_dsn,
        ("oracle", "user"): oracle_user,
        ("oracle", "password"): oracle_password,
        ("oracle", "schema"): oracle_schema,
        ("oracle", "table"): oracle_table,
        ("oracle", "tablespace"): oracle_tablespace,
        ("output", "report_md"): report_file,
    }

    report = Report()
    try:
        cfg = resolve_config(config, overrides)
        report.report_file = cfg.output.report_md
        show_welcome_message(report)
        options = cf.build_options(cfg, require_target=not dry_run)
        _ensure_passwords(cfg, dry_run)

        if dry_run:
            _dry_run(cfg, options, report)
        else:
            _transfer(cfg, options, report)
    except ConfigurationError as e:
        report.error(e.message)
        raise typer.Exit(code=e.exit_code)
    except TransferError as e:
        raise typer.Exit(code=e.exit_code)
    finally:
        report.write()

    typer.secho("Transfer complete!" if not dry_run else "Dry run complete.", fg="green")


def _dry_run(cfg: cf.Config, options: cf.TransferOptions, report: Report) -> None:
    conn, cur = connect_source(cfg.source, report)
    try:
        report.info(f"Running: {options.query}")
        cur.execute(options.query)
        plan = plan_transfer(cur, options, oracledb.paramstyle)
        report.info(f"{plan.create_sql};")
        report.info(f"{plan.insert_sql};")
    except TransferError as e:
        report.error(e.message)
        raise
    except Exception as e:
        report.error("Unable to plan the transfer.", e)
        raise TransferFailure(f"Unable to plan the transfer: {e}", stage="planning") from e
    finally:
        _close(cur)
        _close(conn)


def _transfer(cfg: cf.Config, options: cf.TransferOptions, report: Report) -> None:
    src_conn, src_cur = connect_source(cfg.source, report)
    try:
        ora = connect_oracle(cfg.oracle, report)
        try:
            initialize_oracle_session(ora, options, report)
            run_transfer(
                src_cur,
                ora,
                options,
                retry_policy=ConsoleRetryPolicy(qualified_table_name(options)),
                report=report,
                paramstyle=oracledb.paramstyle,
            )
        finally:
            _close(ora)
    finally:
        _close(src_cur)
        _close(src_conn)


if __name__ == "__main__":
    app()
