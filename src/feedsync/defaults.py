"""Default configuration for feedsync."""

import os
from pathlib import Path


DEFAULT_CONFIG_TOML = """# feedsync configuration

[vault]
path = "{vault_path}"  # root of the document tree articles are written into
settings_file = "{settings_path}"  # JSON blob with feeds, article states and globals

[daemon]
heartbeat_seconds = 60  # how often the global scheduler checks fetch_frequency
default_update_interval = 60  # minutes between syncs for a newly added feed
# request_timeout = 30  # seconds; omit to use the HTTP client default
user_agent = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"

[llm]
# Used by the per-feed summarize / rewrite / transcribe toggles.
# Leave api_key empty to disable those features.
provider = "openai"
model = "gpt-4o-mini"
api_key = "env:OPENAI_API_KEY"

# Ollama (local models) - replace above config with:
# provider = "ollama"
# model = "ollama/llama3"
# api_base = "http://localhost:11434"
# api_key = ""
"""


def config_dir() -> Path:
    """$XDG_CONFIG_HOME/feedsync (or ~/.config/feedsync)."""
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
    return Path(xdg_config_home) / "feedsync"


def data_dir() -> Path:
    """$XDG_DATA_HOME/feedsync (or ~/.local/share/feedsync)."""
    xdg_data_home = os.environ.get(
        "XDG_DATA_HOME", str(Path.home() / ".local" / "share")
    )
    return Path(xdg_data_home) / "feedsync"


def ensure_config(vault_path: Path | None = None) -> Path:
    """Create the default configuration file if it doesn't exist.

    Args:
        vault_path: Vault root to write into a new config (defaults to ~/Notes)

    Returns:
        Path to config.toml
    """
    directory = config_dir()
    directory.mkdir(parents=True, exist_ok=True)

    config_file = directory / "config.toml"
    if not config_file.exists():
        config_content = DEFAULT_CONFIG_TOML.format(
            vault_path=str(vault_path or Path.home() / "Notes"),
            settings_path=str(data_dir() / "settings.json"),
        )
        config_file.write_text(config_content)
        print(f"Created {config_file}")
    else:
        print(f"Config already exists: {config_file}")

    return config_file


if __name__ == "__main__":
    ensure_config()
