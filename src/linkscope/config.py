"""Loading and saving of config.yaml, the .env file and the session."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .models.config import AppConfig, EnvSettings, Session

CONFIG_DIR_ENV = "LINKSCOPE_CONFIG_DIR"
PLACEHOLDER_API_KEY = "your-openai-api-key-here"

_PLACEHOLDER_MARKERS = ("your-", "replace-with", "example", "changeme")

_ENV_TEMPLATE = """# LinkScope identity (free-text label, not a login)
LINKSCOPE_USERNAME={username}

# OpenAI key for direct analysis and for the /api/analyze-link proxy
OPENAI_API_KEY={api_key}
"""


class ConfigError(Exception):
    """Missing or invalid LinkScope configuration."""

    pass


def is_placeholder_secret(value: Optional[str]) -> bool:
    """True for empty secrets and the template values written by init."""
    normalized = (value or "").strip().lower()
    if not normalized:
        return True
    return any(marker in normalized for marker in _PLACEHOLDER_MARKERS)


def _default_config_dir() -> Path:
    override = os.environ.get(CONFIG_DIR_ENV)
    return Path(override) if override else Path.home() / ".linkscope"


class ConfigManager:
    """Reads and writes the files under the LinkScope config directory.

    <config_dir>/config.yaml holds AppConfig, <config_dir>/.env holds the
    username and the OpenAI key.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Defaults to $LINKSCOPE_CONFIG_DIR, then ~/.linkscope
        """
        self.config_dir = Path(config_dir) if config_dir else _default_config_dir()
        self.config_file = self.config_dir / "config.yaml"
        self.env_file = self.config_dir / ".env"

    def load_env_settings(self) -> EnvSettings:
        """Read .env into the process environment and parse it.

        Variables already set in the environment win over the file.

        Raises:
            ConfigError: If the settings do not validate
        """
        if self.env_file.is_file():
            load_dotenv(self.env_file)

        try:
            return EnvSettings()
        except ValueError as e:
            raise ConfigError(f"Invalid settings in {self.env_file}: {e}") from e

    def load_app_config(self) -> AppConfig:
        """Parse config.yaml; an empty file yields the defaults.

        Raises:
            ConfigError: If the file is missing, not YAML, or does not validate
        """
        if not self.config_file.is_file():
            raise ConfigError(
                f"No config file at {self.config_file}. "
                "Run 'linkscope init' to create one."
            )

        data = self._read_yaml()
        try:
            return AppConfig.model_validate(data)
        except ValueError as e:
            raise ConfigError(f"Invalid values in {self.config_file}: {e}") from e

    def save_app_config(self, config: AppConfig) -> None:
        """Raises ConfigError if config.yaml cannot be written."""
        text = yaml.safe_dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False)
        self._write(self.config_file, text)

    def create_env_file(self, username: str, api_key: Optional[str] = None) -> None:
        """Write .env with the username and OpenAI key, readable by the owner only.

        A placeholder key is written when none is given.

        Raises:
            ConfigError: If the file cannot be written
        """
        text = _ENV_TEMPLATE.format(username=username, api_key=api_key or PLACEHOLDER_API_KEY)
        self._write(self.env_file, text)

        if os.name != "nt":
            os.chmod(self.env_file, 0o600)

    def storage_root(self, config: AppConfig) -> Path:
        """Directory holding the link table."""
        if config.storage_path:
            return Path(config.storage_path)
        return self.config_dir / "storage"

    def load_session(self, username: Optional[str] = None) -> Session:
        """Build the session for this process.

        Args:
            username: Overrides LINKSCOPE_USERNAME when given

        Raises:
            ConfigError: If no username is available
        """
        env_settings = self.load_env_settings()
        effective = (username or env_settings.linkscope_username or "").strip()
        if not effective:
            raise ConfigError(
                "No username set. Pass --user or set LINKSCOPE_USERNAME in "
                f"{self.env_file}."
            )

        api_key = env_settings.openai_api_key
        if is_placeholder_secret(api_key):
            api_key = None

        return Session(username=effective, api_key=api_key.strip() if api_key else None)

    def _read_yaml(self) -> Dict[str, Any]:
        try:
            data = yaml.safe_load(self.config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_file}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read {self.config_file}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_file} must contain a mapping")
        return data

    def _write(self, path: Path, text: str) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Failed to write {path}: {e}") from e
