"""Tests for the command-line entry point."""

from unittest.mock import patch

import pytest

from subscription_manager.__main__ import check_config, main, processor_mode
from subscription_manager.config import DEFAULT_CONFIG_PATH


@pytest.fixture
def stripe_env(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_123")


class TestProcessorMode:
    @pytest.mark.parametrize(
        "key,mode",
        [
            (None, "unset"),
            ("", "unset"),
            ("sk_test_123", "test"),
            ("sk_live_123", "live"),
            ("rk_live_123", "live"),
        ],
    )
    def test_mode_from_prefix(self, key, mode):
        assert processor_mode(key) == mode


class TestCheckConfig:
    def test_valid(self, stripe_env, capsys):
        assert check_config(str(DEFAULT_CONFIG_PATH)) == 0
        assert "Stripe mode: test" in capsys.readouterr().out

    def test_missing_secrets(self, monkeypatch, capsys):
        monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)

        assert check_config(str(DEFAULT_CONFIG_PATH)) == 1
        assert "must both be set" in capsys.readouterr().err

    def test_missing_file(self, stripe_env, tmp_path, capsys):
        assert check_config(str(tmp_path / "missing.yaml")) == 1
        assert "Invalid configuration" in capsys.readouterr().err


class TestMain:
    def test_check_config_exits_without_serving(self, stripe_env):
        with patch("subscription_manager.__main__.uvicorn.run") as run:
            with pytest.raises(SystemExit) as exc_info:
                main(["--check-config", "--config", str(DEFAULT_CONFIG_PATH)])

        assert exc_info.value.code == 0
        run.assert_not_called()

    def test_runs_uvicorn(self, monkeypatch):
        # main() exports these; registering them here restores them afterwards
        monkeypatch.setenv("LOG_LEVEL", "INFO")
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.setenv("CONFIG_PATH", str(DEFAULT_CONFIG_PATH))
        monkeypatch.delenv("RELOAD", raising=False)
        monkeypatch.delenv("HOST", raising=False)

        with patch("subscription_manager.__main__.uvicorn.run") as run:
            main(["--port", "9000", "--log-level", "DEBUG"])

        run.assert_called_once_with(
            "subscription_manager.main:app",
            host="0.0.0.0",
            port=9000,
            log_level="debug",
            reload=False,
            access_log=False,
        )
