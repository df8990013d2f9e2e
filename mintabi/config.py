# Plan board configuration
# Override paths and endpoints via mintabi.yaml or environment variables.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError

CONFIG_PATH = Path(__file__).parent.parent / "mintabi.yaml"


@dataclass
class Config:
    """Runtime configuration for a board client or the plan server."""

    # Storage
    db_path: str = "~/.local/share/mintabi/plans.db"
    history_path: str = "~/.local/share/mintabi/mintabi_history.json"

    # Shared server (None = local SQLite only)
    server_url: Optional[str] = None
    api_key: str = ""
    request_timeout_secs: float = 5.0
    poll_interval_secs: float = 1.0

    # Behavior
    background_writes: bool = False
    history_display_limit: int = 5      # Short list on the start screen
    pointer_activation_distance: float = 5.0

    def apply_env(self):
        """Environment variables win over the YAML file."""
        self.db_path = os.environ.get("MINTABI_DB", self.db_path)
        self.history_path = os.environ.get("MINTABI_HISTORY", self.history_path)
        self.server_url = os.environ.get("MINTABI_SERVER_URL", self.server_url) or None
        self.api_key = os.environ.get("MINTABI_API_SECRET", self.api_key)

    def resolve_paths(self):
        """Expand ~ in storage paths."""
        self.db_path = str(Path(self.db_path).expanduser())
        self.history_path = str(Path(self.history_path).expanduser())

    def validate(self):
        if self.poll_interval_secs < 0:
            raise ConfigError("poll_interval_secs must not be negative")
        if self.request_timeout_secs <= 0:
            raise ConfigError("request_timeout_secs must be positive")
        if self.history_display_limit < 1:
            raise ConfigError("history_display_limit must be at least 1")

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except (OSError, yaml.YAMLError, TypeError, AttributeError):
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env()
        cfg.resolve_paths()
        cfg.validate()
        return cfg

    def open_store(self):
        """The document store this config points at."""
        if self.server_url:
            from .http_store import HttpDocumentStore
            return HttpDocumentStore(
                self.server_url,
                api_key=self.api_key,
                timeout=self.request_timeout_secs,
                poll_interval=self.poll_interval_secs,
            )
        from .docstore import SqliteDocumentStore
        return SqliteDocumentStore(self.db_path)

    def open_history(self):
        from .history import HistoryLedger
        return HistoryLedger(self.history_path)
