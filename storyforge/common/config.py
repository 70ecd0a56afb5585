"""
Configuration Management for Storyforge

Loads configuration from ~/.storyforge/config.json and environment variables.
A .env file in the working directory is honored for local development.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger("storyforge.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".storyforge"
CONFIG_PATH = CONFIG_DIR / "config.json"
LEDGER_PATH = CONFIG_DIR / "processed_transcripts.json"

# Project paths (relative to this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent
PRODUCT_CONTEXT_PATH = PROJECT_ROOT / "context" / "PRODUCT_CONTEXT.md"


@dataclass
class NotionConfig:
    """Transcript database (document store) configuration"""
    token: str = ""
    database_id: str = ""


@dataclass
class LLMConfig:
    """Generative backend configuration"""
    provider: str = "openai"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    temperature: float = 0.2
    max_tokens: int = 4000

    @property
    def api_key(self) -> str:
        return getattr(self, f"{self.provider}_api_key", "")

    @property
    def model(self) -> str:
        return getattr(self, f"{self.provider}_model", "")


@dataclass
class SlackConfig:
    """Chat notification configuration"""
    webhook_url: str = ""


@dataclass
class SchedulerConfig:
    """Periodic processing configuration"""
    enabled: bool = False
    interval_seconds: int = 120
    page_size: int = 20


@dataclass
class PacingConfig:
    """Outbound pacing against third-party rate limits"""
    notifications_per_second: float = 1 / 0.3
    documents_per_second: float = 0.5


@dataclass
class ServerConfig:
    """HTTP surface configuration"""
    port: int = 3001


@dataclass
class StoryforgeConfig:
    """Main Storyforge configuration"""
    notion: NotionConfig = field(default_factory=NotionConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    pacing: PacingConfig = field(default_factory=PacingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    ledger_path: str = str(LEDGER_PATH)
    product_context_path: str = str(PRODUCT_CONTEXT_PATH)


def _parse_notion_config(data: dict) -> NotionConfig:
    """Parse notion section from config dict"""
    notion_data = data.get("notion", {})
    return NotionConfig(
        token=notion_data.get("token", ""),
        database_id=notion_data.get("database_id", ""),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        temperature=llm_data.get("temperature", defaults.temperature),
        max_tokens=llm_data.get("max_tokens", defaults.max_tokens),
    )


def _parse_scheduler_config(data: dict) -> SchedulerConfig:
    """Parse scheduler section from config dict"""
    scheduler_data = data.get("scheduler", {})
    return SchedulerConfig(
        enabled=scheduler_data.get("enabled", False),
        interval_seconds=scheduler_data.get("interval_seconds", 120),
        page_size=scheduler_data.get("page_size", 20),
    )


def _parse_pacing_config(data: dict) -> PacingConfig:
    """Parse pacing section from config dict"""
    pacing_data = data.get("pacing", {})
    defaults = PacingConfig()
    return PacingConfig(
        notifications_per_second=pacing_data.get(
            "notifications_per_second", defaults.notifications_per_second
        ),
        documents_per_second=pacing_data.get(
            "documents_per_second", defaults.documents_per_second
        ),
    )


def _env_int(name: str) -> int:
    raw = os.getenv(name)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def load_config() -> StoryforgeConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a local .env file)
    2. Config file (~/.storyforge/config.json)
    3. Default values
    """
    load_dotenv()
    config = StoryforgeConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.notion = _parse_notion_config(data)
            config.llm = _parse_llm_config(data)
            config.slack = SlackConfig(webhook_url=data.get("slack", {}).get("webhook_url", ""))
            config.scheduler = _parse_scheduler_config(data)
            config.pacing = _parse_pacing_config(data)
            config.server = ServerConfig(port=data.get("server", {}).get("port", 3001))
            config.ledger_path = data.get("ledger_path", config.ledger_path)
            config.product_context_path = data.get(
                "product_context_path", config.product_context_path
            )
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("NOTION_TOKEN"):
        config.notion.token = os.getenv("NOTION_TOKEN")
    if os.getenv("NOTION_DATABASE_ID"):
        config.notion.database_id = os.getenv("NOTION_DATABASE_ID")

    _env_llm_map = {
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "STORYFORGE_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)

    if os.getenv("SLACK_WEBHOOK_URL"):
        config.slack.webhook_url = os.getenv("SLACK_WEBHOOK_URL")

    if os.getenv("ENABLE_AUTO_PROCESSING"):
        config.scheduler.enabled = os.getenv("ENABLE_AUTO_PROCESSING").lower() == "true"
    if os.getenv("AUTO_PROCESSING_INTERVAL_SECONDS"):
        config.scheduler.interval_seconds = _env_int("AUTO_PROCESSING_INTERVAL_SECONDS")
    if os.getenv("PORT"):
        config.server.port = _env_int("PORT")

    if os.getenv("STORYFORGE_LEDGER_PATH"):
        config.ledger_path = os.getenv("STORYFORGE_LEDGER_PATH")
    if os.getenv("STORYFORGE_PRODUCT_CONTEXT_PATH"):
        config.product_context_path = os.getenv("STORYFORGE_PRODUCT_CONTEXT_PATH")

    return config


def require_notion(config: StoryforgeConfig) -> None:
    """Raise ConfigurationError unless the transcript database is configured"""
    if not config.notion.token:
        raise ConfigurationError("NOTION_TOKEN not found in environment variables")
    if not config.notion.database_id:
        raise ConfigurationError("NOTION_DATABASE_ID not found in environment variables")


def require_llm(config: StoryforgeConfig) -> None:
    """Raise ConfigurationError unless the generative backend has an API key"""
    if not config.llm.api_key:
        raise ConfigurationError(
            f"{config.llm.provider} API key not configured. "
            f"Add {config.llm.provider.upper()}_API_KEY to your environment variables"
        )


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
