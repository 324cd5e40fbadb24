"""
CLI Configuration Management
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any


ONE_YEAR_SECONDS = 365 * 24 * 60 * 60


@dataclass
class CLIConfig:
    """Configuration for the encg CLI"""

    # API settings
    api_base_url: str = "http://localhost:8000/api/v1"
    timeout: int = 60

    # production disables the bot-check bypass token
    environment: str = "development"

    # Bot-check token obtained from the login page widget
    bot_token: Optional[str] = None

    # Session settings
    session_file: str = "session.json"
    session_timeout_seconds: int = ONE_YEAR_SECONDS
    activity_throttle_seconds: int = 30

    # Where downloads land by default
    download_dir: str = "."

    verbose: bool = False

    # Paths
    config_dir: str = field(default_factory=lambda: str(Path.home() / ".encg"))

    def __post_init__(self):
        if not os.path.isabs(self.session_file):
            self.session_file = str(Path(self.config_dir) / self.session_file)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file"""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
                for key, value in data.items():
                    if hasattr(self, key):
                        setattr(self, key, value)

    @classmethod
    def load_default(cls, config_dir: Optional[str] = None) -> "CLIConfig":
        """Defaults, then ~/.encg/config.json, then environment variables"""
        config = cls(config_dir=config_dir) if config_dir else cls()
        default_config_path = Path(config.config_dir) / "config.json"
        if default_config_path.exists():
            config.load_from_file(str(default_config_path))

        config._load_from_env()
        return config

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            "ENCG_API_URL": "api_base_url",
            "ENCG_ENVIRONMENT": "environment",
            "ENCG_BOT_TOKEN": "bot_token",
            "ENCG_DOWNLOAD_DIR": "download_dir",
            "ENCG_TIMEOUT": ("timeout", int),
            "ENCG_VERBOSE": ("verbose", lambda x: x.lower() == "true"),
        }

        for env_var, mapping in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(mapping, tuple):
                    attr, converter = mapping
                    setattr(self, attr, converter(value))
                else:
                    setattr(self, mapping, value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return asdict(self)
