# tests/core/test_config.py
from smartbroker.core import config
from smartbroker.core.config import Settings, dotenv_files


def test_env_file_config_never_lists_missing_files():
    env_file = Settings.model_config["env_file"]
    assert env_file is None or all(env_file)


def test_settings_load_without_any_dotenv_file(monkeypatch):
    monkeypatch.setattr(config, "find_dotenv_path", lambda filename, usecwd=False: None)
    assert dotenv_files() is None

    loaded = Settings(_env_file=dotenv_files())
    assert loaded.API_V1_STR == "/api/v1"
    assert loaded.CAMPAIGN_DEFAULT_RATE_LIMIT_MS == 1000


def test_settings_load_with_only_dotenv(monkeypatch, tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("CAMPAIGN_DEFAULT_RATE_LIMIT_MS=250\n", encoding="utf-8")
    monkeypatch.setattr(
        config, "find_dotenv_path", lambda filename, usecwd=False: str(env_path) if filename == ".env" else None
    )

    assert dotenv_files() == (str(env_path),)
    assert Settings(_env_file=dotenv_files()).CAMPAIGN_DEFAULT_RATE_LIMIT_MS == 250
