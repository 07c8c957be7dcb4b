"""Tests for YAML configuration loading."""

from __future__ import annotations

import os

import pytest

from support_chat.config import AppConfig, load_config


def write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_defaults_for_empty_file(self, tmp_path):
        config = load_config(write(tmp_path, ""), env_path=tmp_path / ".env")
        assert config == AppConfig()
        assert config.chat.max_message_length == 2000
        assert config.rate_limit.max_requests == 20
        assert config.ai.max_tokens == 500

    def test_env_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SUPPORT_CHAT_TEST_KEY", "sk-test")
        path = write(
            tmp_path,
            "anthropic:\n  api_key: ${SUPPORT_CHAT_TEST_KEY}\n",
        )
        config = load_config(path, env_path=tmp_path / ".env")
        assert config.anthropic.api_key == "sk-test"

    def test_dotenv_file_loaded(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SUPPORT_CHAT_CRON", raising=False)
        env = tmp_path / ".env"
        env.write_text("SUPPORT_CHAT_CRON=from-dotenv\n", encoding="utf-8")
        path = write(tmp_path, "server:\n  cron_secret: ${SUPPORT_CHAT_CRON}\n")

        try:
            config = load_config(path, env_path=env)
        finally:
            os.environ.pop("SUPPORT_CHAT_CRON", None)
        assert config.server.cron_secret == "from-dotenv"

    def test_data_dir_reference(self, tmp_path):
        path = write(
            tmp_path,
            "data_dir: /var/lib/chat\nstorage:\n  db_path: ${data_dir}/chat.db\n",
        )
        config = load_config(path, env_path=tmp_path / ".env")
        assert config.storage.db_path == "/var/lib/chat/chat.db"

    def test_unknown_variable_left_as_is(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SUPPORT_CHAT_UNSET", raising=False)
        path = write(tmp_path, "server:\n  cron_secret: ${SUPPORT_CHAT_UNSET}\n")
        config = load_config(path, env_path=tmp_path / ".env")
        assert config.server.cron_secret == "${SUPPORT_CHAT_UNSET}"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml", env_path=tmp_path / ".env")
