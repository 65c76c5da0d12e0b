from metastore.__main__ import config_metastore
from metastore.config import ENV_PREFIX, Environment
from tests.tools import metastore_settings


def answer(monkeypatch, *answers):
    replies = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt: next(replies, ""))


def env_lines(path) -> dict[str, str]:
    lines = [line for line in path.read_text().splitlines() if line and not line.startswith("#")]
    return dict(line.split("=", 1) for line in lines)


def test_config_writes_only_changed_settings(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    answer(monkeypatch, "production")
    with metastore_settings(env_file=env_file, environment=Environment.development):
        config_metastore(None)
    # The development origins must not be pinned for production
    assert env_lines(env_file) == {f"{ENV_PREFIX}environment": "production"}


def test_config_keeps_existing_entries(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(f"{ENV_PREFIX}port=8000\n{ENV_PREFIX}public_url=https://metastorage.example\n")
    answer(monkeypatch, "", "", "", "", "9000")
    with metastore_settings(env_file=env_file):
        config_metastore(None)
    assert env_lines(env_file) == {
        f"{ENV_PREFIX}port": "9000",
        f"{ENV_PREFIX}public_url": "https://metastorage.example",
    }
