"""Configuration for the tasks MCP server."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from src.search import DEFAULT_FIELD_WEIGHTS


@dataclass
class SessionConfig:
    """Configuration for the local session lifecycle."""
    duration: float = 30 * 60  # Seconds of inactivity (and token lifetime)
    warning: float = 5 * 60  # Warn when this close to expiry
    check_interval: float = 60.0  # Seconds between validity checks

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Create config from environment variables."""
        return cls(
            duration=float(os.environ.get("TASKS_SESSION_DURATION", "1800")),
            warning=float(os.environ.get("TASKS_SESSION_WARNING", "300")),
            check_interval=float(os.environ.get("TASKS_SESSION_CHECK_INTERVAL", "60")),
        )


def _parse_weights(value: str) -> Dict[str, float]:
    """Parse ``"title:3,priority:1"`` over the default field weights."""
    weights = dict(DEFAULT_FIELD_WEIGHTS)
    for item in value.split(","):
        if not item.strip():
            continue
        name, _, weight = item.partition(":")
        weights[name.strip()] = float(weight)
    return weights


@dataclass
class SearchConfig:
    """Configuration for task search."""
    debounce_delay: float = 0.3  # Seconds of quiet before a query runs
    fields: Tuple[str, ...] = ("title", "description")
    field_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))

    @classmethod
    def from_env(cls) -> "SearchConfig":
        """Create config from environment variables."""
        fields_str = os.environ.get("TASKS_SEARCH_FIELDS", "title,description")
        return cls(
            debounce_delay=float(os.environ.get("TASKS_DEBOUNCE_DELAY", "0.3")),
            fields=tuple(f.strip() for f in fields_str.split(",") if f.strip()),
            field_weights=_parse_weights(os.environ.get("TASKS_FIELD_WEIGHTS", "")),
        )


@dataclass
class NotificationConfig:
    """Configuration for the task mail automation."""
    interval_minutes: float = 20.0
    history_limit: int = 100  # Notifications kept in history
    min_delay: float = 0.1  # Simulated delivery latency, seconds
    max_delay: float = 0.5
    user_email: str = "demo@taskmanager.com"
    db_path: Optional[Path] = None  # None = use default

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """Create config from environment variables."""
        db_path_str = os.environ.get("TASKS_NOTIFICATIONS_DB")
        return cls(
            interval_minutes=float(os.environ.get("TASKS_AUTOMATION_INTERVAL", "20")),
            history_limit=int(os.environ.get("TASKS_NOTIFICATION_HISTORY", "100")),
            user_email=os.environ.get("TASKS_USER_EMAIL", "demo@taskmanager.com"),
            db_path=Path(db_path_str) if db_path_str else None,
        )


@dataclass
class Config:
    """Main configuration for the tasks MCP server."""
    session: SessionConfig = field(default_factory=SessionConfig.from_env)
    search: SearchConfig = field(default_factory=SearchConfig.from_env)
    notifications: NotificationConfig = field(default_factory=NotificationConfig.from_env)
    api_url: str = "http://localhost:5000/api/tasks"
    request_timeout: float = 10.0  # Seconds

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        return cls(
            session=SessionConfig.from_env(),
            search=SearchConfig.from_env(),
            notifications=NotificationConfig.from_env(),
            api_url=os.environ.get("TASKS_API_URL", "http://localhost:5000/api/tasks"),
            request_timeout=float(os.environ.get("TASKS_REQUEST_TIMEOUT", "10.0")),
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance.

    Returns:
        Config loaded from environment
    """
    global _config

    if _config is None:
        _config = Config.from_env()

    return _config
