"""Configuration loading."""

from pathlib import Path
from typing import Optional

import yaml

from .config_models import TaskweaveConfig

DEFAULT_CONFIG_DIR = Path.home() / ".taskweave"


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / "config.yaml",
        DEFAULT_CONFIG_DIR / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config_model(config_path: Optional[Path] = None) -> TaskweaveConfig:
    """Load configuration as a validated model. Raises ValueError on bad input."""
    data = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file must hold a mapping, got {type(data).__name__}")

    try:
        return TaskweaveConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}") from e


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration as a plain dict."""
    return load_config_model(config_path).to_dict()


def write_default_config(path: Path) -> bool:
    """Write the default config as YAML. False if the file already exists."""
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    data = TaskweaveConfig().model_dump(mode="json")
    data["llm"]["api_key"] = "${ANTHROPIC_API_KEY}"
    data["llm"]["embedding_api_key"] = "${OPENAI_API_KEY}"
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    return True
