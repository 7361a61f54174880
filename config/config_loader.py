"""Load settings.yaml into typed dataclasses. Resolves the data directory."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

DATA_DIR_ENV = "CONCLAVE_DATA_DIR"


@dataclass
class PromptsConfig:
    primary: str
    observer: str
    summary: str


@dataclass
class DefaultsConfig:
    data_dir: Path
    default_model: str
    database_file: str = "conclave.db"
    roster_file: str = "agents.yaml"
    provider_configs_file: str = "api-configs.yaml"
    max_messages: int = 200
    context_window: int = 15
    history_messages: int = 5
    title_max_len: int = 40
    timeout_sec: int = 120
    max_tokens: int = 4096

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.database_file

    @property
    def roster_path(self) -> Path:
        return self.data_dir / self.roster_file

    @property
    def provider_configs_path(self) -> Path:
        return self.data_dir / self.provider_configs_file


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    prompts: PromptsConfig


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing. The data directory from
    the file is overridden by the CONCLAVE_DATA_DIR environment variable.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    data_dir_override = os.environ.get(DATA_DIR_ENV, "").strip()
    data_dir = Path(data_dir_override or defaults_raw["data_dir"]).expanduser()
    if data_dir_override:
        logger.info("Data directory overridden by %s: %s", DATA_DIR_ENV, data_dir)

    defaults = DefaultsConfig(
        data_dir=data_dir,
        default_model=str(defaults_raw["default_model"]),
        database_file=str(defaults_raw.get("database_file", "conclave.db")),
        roster_file=str(defaults_raw.get("roster_file", "agents.yaml")),
        provider_configs_file=str(defaults_raw.get("provider_configs_file", "api-configs.yaml")),
        max_messages=int(defaults_raw.get("max_messages", 200)),
        context_window=int(defaults_raw.get("context_window", 15)),
        history_messages=int(defaults_raw.get("history_messages", 5)),
        title_max_len=int(defaults_raw.get("title_max_len", 40)),
        timeout_sec=int(defaults_raw.get("timeout_sec", 120)),
        max_tokens=int(defaults_raw.get("max_tokens", 4096)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        primary=prompts_raw["primary"],
        observer=prompts_raw["observer"],
        summary=prompts_raw["summary"],
    )

    return AppConfig(defaults=defaults, prompts=prompts)
