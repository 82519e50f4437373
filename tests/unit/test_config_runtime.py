import pytest

from stack_launcher.config import (
    ConfigurationError,
    env_int,
    env_seconds,
    env_str,
    reset_default_values,
)
from stack_launcher.config import runtime


def test_env_str_falls_back_to_value(monkeypatch):
    monkeypatch.delenv("STACK_TEST_VALUE", raising=False)
    assert env_str("STACK_TEST_VALUE", "fallback") == "fallback"


def test_env_str_required_missing_raises(monkeypatch):
    monkeypatch.delenv("STACK_TEST_VALUE", raising=False)
    with pytest.raises(ConfigurationError):
        env_str("STACK_TEST_VALUE", required=True)


def test_env_int_rejects_garbage(monkeypatch):
    monkeypatch.setenv("STACK_TEST_VALUE", "abc")
    with pytest.raises(ConfigurationError, match="integer"):
        env_int("STACK_TEST_VALUE", 1)


def test_env_seconds_accepts_fractions_and_rejects_negative(monkeypatch):
    monkeypatch.setenv("STACK_TEST_VALUE", "0.25")
    assert env_seconds("STACK_TEST_VALUE") == 0.25
    monkeypatch.setenv("STACK_TEST_VALUE", "-1")
    with pytest.raises(ConfigurationError):
        env_seconds("STACK_TEST_VALUE")


def test_dotenv_file_supplies_defaults(tmp_path, monkeypatch):
    dotenv = tmp_path / ".env"
    dotenv.write_text("# comment\nexport STACK_TEST_VALUE='from-file'\n")
    monkeypatch.delenv("STACK_TEST_VALUE", raising=False)
    monkeypatch.setattr(runtime, "_DOTENV_CANDIDATES", (dotenv,))
    reset_default_values()

    assert env_str("STACK_TEST_VALUE") == "from-file"

    monkeypatch.setenv("STACK_TEST_VALUE", "from-env")
    assert env_str("STACK_TEST_VALUE") == "from-env"


def test_json_defaults_must_be_flat(tmp_path, monkeypatch):
    json_file = tmp_path / "runtime_env.json"
    json_file.write_text('{"STACK_TEST_VALUE": {"nested": 1}}')
    monkeypatch.setattr(runtime, "_JSON_ENV_CANDIDATES", (json_file,))
    reset_default_values()

    with pytest.raises(ConfigurationError, match="scalar"):
        env_str("STACK_TEST_VALUE")
