"""
Configuration Management for threadmind

Loads configuration from ~/.threadmind/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger("threadmind.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".threadmind"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"

# Shared between the embedding provider and the VECTOR(D) columns
DEFAULT_EMBEDDING_DIMENSION = 1536


@dataclass
class DatabaseConfig:
    """Knowledge store configuration"""
    backend: str = "postgres"  # "postgres" or "memory"
    host: str = "localhost"
    port: int = 5432
    name: str = "slack_db"
    user: str = "postgres"
    password: str = ""
    ssl: bool = False
    pool_min_size: int = 1
    pool_max_size: int = 10

    @property
    def dsn(self) -> str:
        auth = self.user
        if self.password:
            auth = f"{self.user}:{self.password}"
        return f"postgresql://{auth}@{self.host}:{self.port}/{self.name}"


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration"""
    mode: str = "simulation"  # "simulation", "femb" (fastembed), "openai"
    model: str = "text-embedding-ada-002"
    dimension: int = DEFAULT_EMBEDDING_DIMENSION
    openai_api_key: str = ""


@dataclass
class SlackConfig:
    """Slack transport and webhook configuration"""
    bot_token: str = ""
    signing_secret: str = ""
    webhook_port: int = 3000


@dataclass
class CaptureConfig:
    """Capture workflow configuration"""
    summary_message_limit: int = 10
    page_size: int = 200
    max_pages: int = 50


@dataclass
class RetrieverConfig:
    """Search defaults"""
    channel_limit: int = 5
    thread_limit: int = 10
    combined_limit: int = 15
    similarity_threshold: float = 0.3


@dataclass
class ThreadmindConfig:
    """Main threadmind configuration"""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    log_level: str = "INFO"
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_database_config(data: dict) -> DatabaseConfig:
    """Parse database section from config dict"""
    db_data = data.get("database", {})
    return DatabaseConfig(
        backend=db_data.get("backend", "postgres"),
        host=db_data.get("host", "localhost"),
        port=int(db_data.get("port", 5432)),
        name=db_data.get("name", "slack_db"),
        user=db_data.get("user", "postgres"),
        password=db_data.get("password", ""),
        ssl=bool(db_data.get("ssl", False)),
        pool_min_size=int(db_data.get("pool_min_size", 1)),
        pool_max_size=int(db_data.get("pool_max_size", 10)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "simulation"),
        model=embedding_data.get("model", "text-embedding-ada-002"),
        dimension=int(embedding_data.get("dimension", DEFAULT_EMBEDDING_DIMENSION)),
        openai_api_key=embedding_data.get("openai_api_key", ""),
    )


def _parse_slack_config(data: dict) -> SlackConfig:
    """Parse slack section from config dict"""
    slack_data = data.get("slack", {})
    return SlackConfig(
        bot_token=slack_data.get("bot_token", ""),
        signing_secret=slack_data.get("signing_secret", ""),
        webhook_port=int(slack_data.get("webhook_port", 3000)),
    )


def _parse_capture_config(data: dict) -> CaptureConfig:
    capture_data = data.get("capture", {})
    return CaptureConfig(
        summary_message_limit=int(capture_data.get("summary_message_limit", 10)),
        page_size=int(capture_data.get("page_size", 200)),
        max_pages=int(capture_data.get("max_pages", 50)),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        channel_limit=int(retriever_data.get("channel_limit", 5)),
        thread_limit=int(retriever_data.get("thread_limit", 10)),
        combined_limit=int(retriever_data.get("combined_limit", 15)),
        similarity_threshold=float(retriever_data.get("similarity_threshold", 0.3)),
    )


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def load_config() -> ThreadmindConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a local .env file)
    2. Config file (~/.threadmind/config.json)
    3. Default values
    """
    load_dotenv()
    config = ThreadmindConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.database = _parse_database_config(data)
            config.embedding = _parse_embedding_config(data)
            config.slack = _parse_slack_config(data)
            config.capture = _parse_capture_config(data)
            config.retriever = _parse_retriever_config(data)
            config.log_level = data.get("log_level", "INFO")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("THREADMIND_STORE"):
        config.database.backend = os.getenv("THREADMIND_STORE")
    if os.getenv("DB_HOST"):
        config.database.host = os.getenv("DB_HOST")
    if os.getenv("DB_PORT"):
        config.database.port = int(os.getenv("DB_PORT"))
    if os.getenv("DB_NAME"):
        config.database.name = os.getenv("DB_NAME")
    if os.getenv("DB_USER"):
        config.database.user = os.getenv("DB_USER")
    if os.getenv("DB_SSL"):
        config.database.ssl = _env_flag(os.getenv("DB_SSL"))
    if os.getenv("DB_POOL_MAX"):
        config.database.pool_max_size = int(os.getenv("DB_POOL_MAX"))

    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")
    if os.getenv("EMBEDDING_DIMENSION"):
        config.embedding.dimension = int(os.getenv("EMBEDDING_DIMENSION"))

    if os.getenv("PORT"):
        config.slack.webhook_port = int(os.getenv("PORT"))
    if os.getenv("LOG_LEVEL"):
        config.log_level = os.getenv("LOG_LEVEL")

    # Secrets (target their section, track env-sourced keys)
    _env_secret_map = {
        "DB_PASSWORD": (config.database, "password"),
        "OPENAI_API_KEY": (config.embedding, "openai_api_key"),
        "SLACK_BOT_TOKEN": (config.slack, "bot_token"),
        "SLACK_SIGNING_SECRET": (config.slack, "signing_secret"),
    }
    for env_var, (section, attr) in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: ThreadmindConfig) -> None:
    """Save configuration to file.

    Secret fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    def _secret(attr: str, value: str) -> str:
        return "" if attr in env_sourced else value

    data = {
        "database": {
            "backend": config.database.backend,
            "host": config.database.host,
            "port": config.database.port,
            "name": config.database.name,
            "user": config.database.user,
            "password": _secret("password", config.database.password),
            "ssl": config.database.ssl,
            "pool_min_size": config.database.pool_min_size,
            "pool_max_size": config.database.pool_max_size,
        },
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
            "dimension": config.embedding.dimension,
            "openai_api_key": _secret("openai_api_key", config.embedding.openai_api_key),
        },
        "slack": {
            "bot_token": _secret("bot_token", config.slack.bot_token),
            "signing_secret": _secret("signing_secret", config.slack.signing_secret),
            "webhook_port": config.slack.webhook_port,
        },
        "capture": {
            "summary_message_limit": config.capture.summary_message_limit,
            "page_size": config.capture.page_size,
            "max_pages": config.capture.max_pages,
        },
        "retriever": {
            "channel_limit": config.retriever.channel_limit,
            "thread_limit": config.retriever.thread_limit,
            "combined_limit": config.retriever.combined_limit,
            "similarity_threshold": config.retriever.similarity_threshold,
        },
        "log_level": config.log_level,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
