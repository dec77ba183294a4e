from pathlib import Path

import pytest

from capregistry.config import settings as settings_module
from capregistry.config.settings import RegistrySettings, load_settings

ENV_VARS = (
    "CAPREG_CONFIG",
    "CAPREG_DB_PATH",
    "CAPREG_SCHEMA_DIR",
    "CAPREG_LOG_LEVEL",
    "OPENAI_API_KEY",
    "CAPREG_EMBEDDING_MODEL",
    "CAPREG_OPENAI_BASE_URL",
    "CAPREG_STRICT",
)


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(settings_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")


def test_defaults_without_config() -> None:
    settings = load_settings()
    assert settings == RegistrySettings()
    assert settings.db_path.endswith("registry.db")
    assert settings.strict is False
    assert settings.embedding_model == "text-embedding-ada-002"


def test_yaml_file_is_loaded(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "db_path: /data/caps.db\nschema_dir: /data/schemas\nlog_level: debug\nstrict: true\n",
        encoding="utf-8",
    )

    settings = load_settings(config)
    assert settings.db_path == "/data/caps.db"
    assert settings.schema_dir == "/data/schemas"
    assert settings.log_level == "DEBUG"
    assert settings.strict is True


def test_env_config_path_wins_over_argument(tmp_path: Path, monkeypatch) -> None:
    arg_config = tmp_path / "arg.yaml"
    arg_config.write_text("db_path: from-arg.db\n", encoding="utf-8")
    env_config = tmp_path / "env.yaml"
    env_config.write_text("db_path: from-env.db\n", encoding="utf-8")
    monkeypatch.setenv("CAPREG_CONFIG", str(env_config))

    assert load_settings(arg_config).db_path == "from-env.db"


def test_default_path_used_when_present(tmp_path: Path, monkeypatch) -> None:
    default = tmp_path / "default.yaml"
    default.write_text("log_level: warning\n", encoding="utf-8")
    monkeypatch.setattr(settings_module, "DEFAULT_CONFIG_PATH", default)

    assert load_settings().log_level == "WARNING"


def test_env_overrides_fields(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("db_path: file.db\nstrict: true\n", encoding="utf-8")
    monkeypatch.setenv("CAPREG_DB_PATH", "env.db")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("CAPREG_STRICT", "no")
    monkeypatch.setenv("CAPREG_OPENAI_BASE_URL", "http://localhost:9999/v1")

    settings = load_settings(config)
    assert settings.db_path == "env.db"
    assert settings.openai_api_key == "sk-env"
    assert settings.strict is False
    assert settings.openai_base_url == "http://localhost:9999/v1"
    assert settings.to_dict()["openai_api_key"] == "***"


def test_empty_or_missing_config_falls_back(tmp_path: Path) -> None:
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_settings(empty) == RegistrySettings()
    assert load_settings(tmp_path / "nope.yaml") == RegistrySettings()

    listy = tmp_path / "list.yaml"
    listy.write_text("- a\n- b\n", encoding="utf-8")
    assert load_settings(listy) == RegistrySettings()
