"""
config/__init__.py - Configuration loading utilities for the settlement engine.

Settings come from config/settlement.yaml; DVP_CONFIG_PATH points at an
alternative file and DVP_LOG_LEVEL overrides the log level. A .env file in
the working directory is loaded first.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from core.constants import DEFAULT_EXPIRATION_DAYS, VARIABLE_PRICE_MIN_DELAY_DAYS

CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settlement.yaml"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    json: bool = False
    file: Optional[str] = None


@dataclass
class SettlementConfig:
    """Settlement engine configuration."""

    # Applied when a trade is requested with expiration 0
    default_expiration_days: int = DEFAULT_EXPIRATION_DAYS

    # Minimum distance between now and a variable price start date
    variable_price_min_delay_days: int = VARIABLE_PRICE_MIN_DELAY_DAYS

    # Deploy engines with an owner-managed executer allow-list
    owned: bool = False

    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settlement": {
                "default_expiration_days": self.default_expiration_days,
                "variable_price_min_delay_days": self.variable_price_min_delay_days,
                "owned": self.owned,
            },
            "logging": {
                "level": self.logging.level,
                "json": self.logging.json,
                "file": self.logging.file,
            },
        }


def load_yaml(filepath: Path) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filepath: Path to the file

    Returns:
        Parsed YAML as dict
    """
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_settlement_config(config_path: Path | None = None) -> SettlementConfig:
    """
    Load settlement configuration.

    Args:
        config_path: Path to a YAML file (default: DVP_CONFIG_PATH or
            config/settlement.yaml)

    Returns:
        SettlementConfig; defaults when the file does not exist
    """
    load_dotenv()

    if config_path is None:
        env_path = os.getenv("DVP_CONFIG_PATH")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_FILE

    data: Dict[str, Any] = {}
    if config_path.exists():
        data = load_yaml(config_path)

    settlement = data.get("settlement") or {}
    logging_data = data.get("logging") or {}

    logging_config = LoggingConfig(
        level=str(logging_data.get("level", "INFO")).upper(),
        json=bool(logging_data.get("json", False)),
        file=logging_data.get("file"),
    )

    env_level = os.getenv("DVP_LOG_LEVEL")
    if env_level:
        logging_config.level = env_level.upper()

    return SettlementConfig(
        default_expiration_days=int(
            settlement.get("default_expiration_days", DEFAULT_EXPIRATION_DAYS)
        ),
        variable_price_min_delay_days=int(
            settlement.get("variable_price_min_delay_days", VARIABLE_PRICE_MIN_DELAY_DAYS)
        ),
        owned=bool(settlement.get("owned", False)),
        logging=logging_config,
    )
