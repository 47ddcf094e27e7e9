"""Configuration loading from TOML."""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .defaults import config_dir, data_dir

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


def expand_env_var(value: Optional[str]) -> Optional[str]:
    """Resolve "env:NAME" values from the environment.

    Unset variables resolve to an empty string so that a missing key reads as
    "not configured" rather than as the literal placeholder.
    """
    if value and value.startswith("env:"):
        return os.environ.get(value[4:], "")
    return value


@dataclass
class Config:
    """Static configuration loaded from config.toml.

    Mutable runtime state (feeds, article states, global defaults) lives in the
    settings blob managed by SettingsRepository, not here.
    """

    vault_path: Path
    settings_path: Path

    # Daemon settings
    heartbeat_seconds: int = 60
    default_update_interval: int = 60
    request_timeout: Optional[float] = None
    user_agent: str = DEFAULT_USER_AGENT

    # LLM settings
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str = ""
    llm_api_base: Optional[str] = None  # For Ollama and custom endpoints

    @property
    def has_llm_credentials(self) -> bool:
        """Whether summarize/rewrite/transcribe may be enabled."""
        if self.llm_provider.lower() == "ollama":
            return bool(self.llm_api_base)
        return bool(self.llm_api_key)

    @property
    def llm_config(self) -> dict:
        """Credentials dict in the shape the summarizer expects."""
        config = {
            "provider": self.llm_provider,
            "model": self.llm_model,
            "api_key": self.llm_api_key,
        }
        if self.llm_api_base:
            config["api_base"] = self.llm_api_base
        return config

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration values are invalid.
        """
        if self.heartbeat_seconds < 1:
            raise ValueError(
                f"heartbeat_seconds must be at least 1, got {self.heartbeat_seconds}"
            )

        if self.default_update_interval < 1:
            raise ValueError(
                f"default_update_interval must be at least 1 minute, got {self.default_update_interval}"
            )

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

    @classmethod
    def from_file(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from TOML file.

        Args:
            config_path: Optional path to config file.
                        Defaults to $XDG_CONFIG_HOME/feedsync/config.toml

        Returns:
            Config instance with loaded values.
        """
        if config_path is None:
            config_path = config_dir() / "config.toml"

        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Run 'feedsync init' to create default configuration."
            )

        try:
            with open(config_path, "rb") as f:
                config_dict = tomllib.load(f)
        except Exception as e:
            raise ValueError(f"Failed to parse config file {config_path}: {e}")

        vault = config_dict.get("vault", {})
        daemon = config_dict.get("daemon", {})
        llm = config_dict.get("llm", {})

        if "path" not in vault:
            raise ValueError("Missing required config field: [vault] path")

        request_timeout = daemon.get("request_timeout")

        config = cls(
            vault_path=Path(vault["path"]).expanduser(),
            settings_path=Path(
                vault.get("settings_file", str(data_dir() / "settings.json"))
            ).expanduser(),
            heartbeat_seconds=daemon.get("heartbeat_seconds", 60),
            default_update_interval=daemon.get("default_update_interval", 60),
            request_timeout=float(request_timeout) if request_timeout else None,
            user_agent=daemon.get("user_agent", DEFAULT_USER_AGENT),
            llm_provider=llm.get("provider", "openai"),
            llm_model=llm.get("model", "gpt-4o-mini"),
            llm_api_key=expand_env_var(llm.get("api_key", "env:OPENAI_API_KEY")) or "",
            llm_api_base=llm.get("api_base"),
        )

        config.validate()

        return config
