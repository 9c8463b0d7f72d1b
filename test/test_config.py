import textwrap

import pytest

import config as cf
from errors import ConfigurationError


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text))
    return str(path)


def test_load_config_sections(tmp_path):
    path = write(tmp_path, "transfer.yaml", """
        source:
          dsn: postgresql://etl@warehouse/db
        oracle:
          dsn: orahost:1521/ORCL
          user: loader
          schema: ANALYTICS
          table: DAILY_TOTALS
        transfer:
          query: SELECT day, total FROM daily
          insert_batch_size: 1000
    """)
    cfg = cf.load_config(path)
    assert cfg.source.driver == "postgres"
    assert cfg.oracle.table == "DAILY_TOTALS"
    assert cfg.transfer.commit_batch_count == cf.DEFAULT_COMMIT_BATCH_COUNT

    opts = cf.build_options(cfg)
    assert opts.insert_batch_size == 1000
    assert opts.schema == "ANALYTICS"
    assert opts.tablespace == ""


def test_unknown_key_is_a_configuration_error(tmp_path):
    path = write(tmp_path, "bad.yaml", """
        oracle:
          tabel: X
    """)
    with pytest.raises(ConfigurationError):
        cf.load_config(path)


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError):
        cf.load_config(str(tmp_path / "nope.yaml"))


def test_query_is_read_from_file(tmp_path):
    query_file = write(tmp_path, "q.sql", "SELECT 1 AS one\n")
    assert cf.read_query(cf.TransferCfg(query_file=query_file)) == "SELECT 1 AS one\n"


def test_query_is_required():
    with pytest.raises(ConfigurationError) as info:
        cf.read_query(cf.TransferCfg())
    assert "--query-file" in str(info.value)


def complete_config(**transfer):
    return cf.Config(
        source=cf.SourceCfg(dsn="postgresql://x"),
        oracle=cf.OracleCfg(dsn="h:1521/s", user="u", table="T"),
        transfer=cf.TransferCfg(query="SELECT 1", **transfer),
    )


@pytest.mark.parametrize("section, key", [
    ("source", "dsn"), ("oracle", "dsn"), ("oracle", "user"), ("oracle", "table"),
])
def test_required_settings(section, key):
    cfg = complete_config()
    setattr(getattr(cfg, section), key, None)
    with pytest.raises(ConfigurationError) as info:
        cf.build_options(cfg)
    assert info.value.exit_code == 2


def test_dry_run_does_not_need_target_login():
    cfg = complete_config()
    cfg.oracle.dsn = None
    cfg.oracle.user = None
    assert cf.build_options(cfg, require_target=False).table == "T"


@pytest.mark.parametrize("transfer", [
    {"insert_batch_size": 0}, {"commit_batch_count": -1}, {"insert_batch_size": "lots"},
])
def test_batch_settings_are_validated(transfer):
    with pytest.raises(ConfigurationError):
        cf.build_options(complete_config(**transfer))


def test_unknown_source_driver():
    cfg = complete_config()
    cfg.source.driver = "mysql"
    with pytest.raises(ConfigurationError):
        cf.build_options(cfg)
