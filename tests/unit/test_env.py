"""
Tests for environment loading and derived configuration.

Covers:
- load_env precedence: process environment, then .env file, then overrides
- TimeParser durations
- State path resolution for session, system and explicit scopes
- ServiceConfig and ClientConfig built from an Env
"""

import os

import pytest

from exitonidle.client import ClientConfig
from exitonidle.env import Env, TimeParser, load_env
from exitonidle.service import ServiceConfig


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for envar_name in Env.types_map():
        monkeypatch.delenv(envar_name, raising=False)

    monkeypatch.chdir(tmp_path)

    return tmp_path


class TestLoadEnvHappyPath:

    def test_defaults(self, clean_env) -> None:
        """With nothing set every field keeps its default."""
        env = load_env()

        assert env.EXIT_ON_IDLE_IDLE_TIMEOUT_MS == 2000
        assert env.EXIT_ON_IDLE_SAVE_TIMEOUT_MS == 1000
        assert env.EXIT_ON_IDLE_SESSION is False
        assert env.get_bus_address() == ("127.0.0.1", 7755)

    def test_reads_process_environment(self, clean_env, monkeypatch) -> None:
        """Variables are converted with their declared types."""
        monkeypatch.setenv("EXIT_ON_IDLE_IDLE_TIMEOUT_MS", "500")
        monkeypatch.setenv("EXIT_ON_IDLE_RACY_EXIT", "true")

        env = load_env()

        assert env.EXIT_ON_IDLE_IDLE_TIMEOUT_MS == 500
        assert env.EXIT_ON_IDLE_RACY_EXIT is True

    def test_env_file_overrides_environment(self, clean_env, monkeypatch) -> None:
        """Values in .env win over the process environment."""
        monkeypatch.setenv("EXIT_ON_IDLE_BUS_PORT", "9000")
        (clean_env / ".env").write_text(
            "EXIT_ON_IDLE_BUS_PORT=9100\nEXIT_ON_IDLE_SESSION=1\n"
        )

        env = load_env()

        assert env.EXIT_ON_IDLE_BUS_PORT == 9100
        assert env.EXIT_ON_IDLE_SESSION is True

    def test_explicit_env_file(self, clean_env) -> None:
        env_file = clean_env / "service.env"
        env_file.write_text("EXIT_ON_IDLE_EXIT_SLEEP_MS=0\n")

        env = load_env(env_file=str(env_file))

        assert env.EXIT_ON_IDLE_EXIT_SLEEP_MS == 0

    def test_overrides_win_and_none_is_ignored(self, clean_env, monkeypatch) -> None:
        """Command line overrides beat everything, unset ones change nothing."""
        monkeypatch.setenv("EXIT_ON_IDLE_SAVE_TIMEOUT_MS", "10")

        env = load_env(
            override={
                "EXIT_ON_IDLE_IDLE_TIMEOUT_MS": 75,
                "EXIT_ON_IDLE_SAVE_TIMEOUT_MS": None,
            },
        )

        assert env.EXIT_ON_IDLE_IDLE_TIMEOUT_MS == 75
        assert env.EXIT_ON_IDLE_SAVE_TIMEOUT_MS == 10


class TestLoadEnvNegativePath:

    def test_unknown_env_file_keys_are_ignored(self, clean_env) -> None:
        (clean_env / ".env").write_text("SOMETHING_ELSE=1\n")

        env = load_env()

        assert not hasattr(env, "SOMETHING_ELSE")

    def test_invalid_integer_is_rejected(self, clean_env, monkeypatch) -> None:
        monkeypatch.setenv("EXIT_ON_IDLE_BUS_PORT", "not-a-port")

        with pytest.raises(ValueError):
            load_env()

    def test_invalid_notify_target_is_rejected(self, clean_env) -> None:
        with pytest.raises(ValueError):
            load_env(override={"EXIT_ON_IDLE_NOTIFY": "syslog"})


class TestTimeParser:

    @pytest.mark.parametrize(
        "time_amount,seconds",
        [
            ("3s", 3.0),
            ("500ms", 0.5),
            ("1m30s", 90.0),
            ("2", 2.0),
        ],
    )
    def test_durations(self, time_amount: str, seconds: float) -> None:
        assert TimeParser(time_amount).time == seconds


class TestStatePath:
    """Where the counter file lives."""

    def test_system_scope(self, clean_env) -> None:
        env = load_env()

        assert env.get_state_path() == "/var/lib/org.verbum.TestExitOnIdle/counter"

    def test_session_scope_uses_working_directory(self, clean_env) -> None:
        env = load_env(override={"EXIT_ON_IDLE_SESSION": True})

        assert env.get_state_path() == os.path.join(str(clean_env), "counter")

    def test_explicit_path_wins(self, clean_env) -> None:
        env = load_env(
            override={
                "EXIT_ON_IDLE_SESSION": True,
                "EXIT_ON_IDLE_STATE_PATH": "/tmp/elsewhere",
            },
        )

        assert env.get_state_path() == "/tmp/elsewhere"


class TestConfigFromEnv:

    def test_service_config(self, clean_env) -> None:
        env = load_env(
            override={
                "EXIT_ON_IDLE_IDLE_TIMEOUT_MIN_MS": 10,
                "EXIT_ON_IDLE_IDLE_TIMEOUT_MS": 20,
                "EXIT_ON_IDLE_SAVE_TIMEOUT_MS": 5,
                "EXIT_ON_IDLE_RACY_EXIT": True,
                "EXIT_ON_IDLE_SESSION": True,
            },
        )

        config = ServiceConfig.from_env(env)

        assert config.idle_range == (10, 20)
        assert config.save_range == (0, 5)
        assert config.racy_exit is True
        assert config.state_path == os.path.join(str(clean_env), "counter")

    def test_client_config(self, clean_env) -> None:
        env = load_env(
            override={
                "EXIT_ON_IDLE_CLIENT_MIN_FREQ_MS": 1,
                "EXIT_ON_IDLE_CLIENT_MAX_FREQ_MS": 2,
                "EXIT_ON_IDLE_STATUS_INTERVAL": "250ms",
            },
        )

        config = ClientConfig.from_env(env)

        assert config.min_freq_ms == 1
        assert config.max_freq_ms == 2
        assert config.status_interval == 0.25
        assert config.reactivate is True
