"""Tests for configuration loading, env overrides, and saving."""

import json
import logging
import os
import stat
import pytest
from unittest.mock import patch

CONFIG_ENV_VARS = (
    "THREADMIND_STORE", "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_SSL",
    "DB_POOL_MAX", "DB_PASSWORD", "EMBEDDING_MODE", "EMBEDDING_MODEL",
    "EMBEDDING_DIMENSION", "OPENAI_API_KEY", "SLACK_BOT_TOKEN",
    "SLACK_SIGNING_SECRET", "PORT", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("threadmind.common.config.load_dotenv"):
        yield


class TestDefaults:
    def test_defaults_without_file(self, tmp_path):
        from threadmind.common.config import load_config

        with patch("threadmind.common.config.CONFIG_PATH", tmp_path / "missing.json"):
            cfg = load_config()

        assert cfg.database.backend == "postgres"
        assert cfg.database.name == "slack_db"
        assert cfg.embedding.mode == "simulation"
        assert cfg.embedding.dimension == 1536
        assert cfg.slack.webhook_port == 3000
        assert cfg.retriever.channel_limit == 5
        assert cfg.retriever.thread_limit == 10
        assert cfg.retriever.combined_limit == 15
        assert cfg.retriever.similarity_threshold == 0.3
        assert cfg.capture.summary_message_limit == 10

    def test_dsn(self):
        from threadmind.common.config import DatabaseConfig

        assert DatabaseConfig().dsn == "postgresql://postgres@localhost:5432/slack_db"
        db = DatabaseConfig(user="kb", password="pw", host="db", port=6543, name="kb")
        assert db.dsn == "postgresql://kb:pw@db:6543/kb"


class TestLoadConfig:
    def test_file_values(self, tmp_path):
        from threadmind.common.config import load_config

        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({
            "database": {"backend": "memory", "host": "db.internal", "pool_max_size": 4},
            "embedding": {"mode": "femb", "model": "BAAI/bge-small-en-v1.5", "dimension": 384},
            "retriever": {"similarity_threshold": 0.5},
            "log_level": "DEBUG",
        }))

        with patch("threadmind.common.config.CONFIG_PATH", config_file):
            cfg = load_config()

        assert cfg.database.backend == "memory"
        assert cfg.database.host == "db.internal"
        assert cfg.database.pool_max_size == 4
        assert cfg.embedding.mode == "femb"
        assert cfg.embedding.dimension == 384
        assert cfg.retriever.similarity_threshold == 0.5
        assert cfg.retriever.channel_limit == 5
        assert cfg.log_level == "DEBUG"

    def test_env_overrides_file(self, tmp_path):
        from threadmind.common.config import load_config

        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"database": {"host": "file-host", "port": 5432}}))

        env = {"DB_HOST": "env-host", "DB_PORT": "6000", "DB_SSL": "true", "PORT": "8080"}
        with patch("threadmind.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config()

        assert cfg.database.host == "env-host"
        assert cfg.database.port == 6000
        assert cfg.database.ssl is True
        assert cfg.slack.webhook_port == 8080

    def test_env_secrets_tracked(self, tmp_path):
        from threadmind.common.config import load_config

        config_file = tmp_path / "config.json"
        config_file.write_text("{}")

        env = {"OPENAI_API_KEY": "sk-env", "SLACK_BOT_TOKEN": "xoxb-env"}
        with patch("threadmind.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config()

        assert cfg.embedding.openai_api_key == "sk-env"
        assert cfg.slack.bot_token == "xoxb-env"
        assert {"openai_api_key", "bot_token"} <= cfg._env_sourced_keys

    def test_invalid_json_falls_back_to_defaults(self, tmp_path):
        from threadmind.common.config import load_config

        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with patch("threadmind.common.config.CONFIG_PATH", config_file):
            cfg = load_config()

        assert cfg.database.backend == "postgres"


class TestSaveConfig:
    def test_save_omits_env_secrets(self, tmp_path):
        from threadmind.common.config import load_config, save_config

        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"slack": {"signing_secret": "from-file"}}))

        env = {"SLACK_BOT_TOKEN": "xoxb-env"}
        with patch("threadmind.common.config.CONFIG_PATH", config_file), \
             patch("threadmind.common.config.CONFIG_DIR", tmp_path), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config()
            save_config(cfg)

        saved = json.loads(config_file.read_text())
        assert saved["slack"]["bot_token"] == ""
        assert saved["slack"]["signing_secret"] == "from-file"

    def test_save_sets_owner_only_permissions(self, tmp_path):
        from threadmind.common.config import ThreadmindConfig, save_config

        config_file = tmp_path / "config.json"
        with patch("threadmind.common.config.CONFIG_PATH", config_file), \
             patch("threadmind.common.config.CONFIG_DIR", tmp_path):
            save_config(ThreadmindConfig())

        assert stat.S_IMODE(config_file.stat().st_mode) == 0o600

    def test_round_trip(self, tmp_path):
        from threadmind.common.config import ThreadmindConfig, load_config, save_config

        config_file = tmp_path / "config.json"
        saved_cfg = ThreadmindConfig()
        saved_cfg.database.backend = "memory"
        saved_cfg.retriever.thread_limit = 20

        with patch("threadmind.common.config.CONFIG_PATH", config_file), \
             patch("threadmind.common.config.CONFIG_DIR", tmp_path):
            save_config(saved_cfg)
            cfg = load_config()

        assert cfg.database.backend == "memory"
        assert cfg.retriever.thread_limit == 20


class TestLogging:
    @pytest.fixture
    def threadmind_logger(self):
        logger = logging.getLogger("threadmind")
        saved = (logger.level, list(logger.handlers), logger.propagate)
        yield logger
        logger.setLevel(saved[0])
        logger.handlers[:] = saved[1]
        logger.propagate = saved[2]

    def test_setup_logging_is_idempotent(self, threadmind_logger):
        from threadmind.common.logging_config import setup_logging

        setup_logging("DEBUG")
        setup_logging("DEBUG")

        marked = [h for h in threadmind_logger.handlers if getattr(h, "_threadmind", False)]
        assert len(marked) == 1
        assert threadmind_logger.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, threadmind_logger):
        from threadmind.common.logging_config import setup_logging

        setup_logging("chatty")
        assert threadmind_logger.level == logging.INFO
