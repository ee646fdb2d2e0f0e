"""Settings loading from config.toml."""

from payroll.settings.payroll import PayrollConfig
from payroll.settings.settings import Settings

CONFIG = """
environment = "PROD"

[postgres]
host = "db.internal"
pool_max_size = 5

[payroll]
master_class = "MILITARY"
master_schema = "hicaddata"

[payroll.classes]
MILITARY = "hicaddata"
Civilian = "hicaddata_civ"
"""


def test_toml_values_are_loaded(tmp_path, monkeypatch):
    (tmp_path / "config.toml").write_text(CONFIG)
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PAYROLL_CONFIG_FILE", raising=False)

    settings = Settings()

    assert settings.ENVIRONMENT == "PROD"
    assert settings.POSTGRES.HOST == "db.internal"
    assert settings.POSTGRES.POOL_MAX_SIZE == 5
    # Class identifiers keep their case.
    assert settings.PAYROLL.CLASSES == {
        "MILITARY": "hicaddata",
        "Civilian": "hicaddata_civ",
    }


def test_master_tables_from_comma_separated_string():
    config = PayrollConfig(MASTER_TABLES="hr_employees, py_bank,,users")
    assert config.MASTER_TABLES == ["hr_employees", "py_bank", "users"]


def test_default_schema_falls_back_to_master_schema():
    assert PayrollConfig(MASTER_SCHEMA="main").default_schema == "main"
    assert PayrollConfig(MASTER_SCHEMA="main", DEFAULT_SCHEMA="other").default_schema == "other"


def test_config_file_can_be_named_by_env(tmp_path, monkeypatch):
    path = tmp_path / "payroll.toml"
    path.write_text('[payroll]\nmaster_schema = "main"\n')
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PAYROLL_CONFIG_FILE", str(path))

    assert Settings().PAYROLL.MASTER_SCHEMA == "main"


def test_keyword_arguments_win_and_environment_is_normalized(tmp_path, monkeypatch):
    (tmp_path / "config.toml").write_text(CONFIG)
    monkeypatch.chdir(tmp_path)

    assert Settings(ENVIRONMENT="staging").ENVIRONMENT == "STAGING"
