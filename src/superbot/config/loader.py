"""
Reading and writing the JSON config file.
"""

import json
import logging
from pathlib import Path

from superbot.config.schema import Config

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.superbot/config.json").expanduser()


def load_config(path: Path | None = None) -> Config:
    """
    Build a Config from `path` (default ~/.superbot/config.json).

    A missing file yields defaults. SUPERBOT_* environment variables
    fill in whatever the file leaves out.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        logger.debug(f"No config at {config_path}, using defaults")
        return Config()

    data = json.loads(config_path.read_text(encoding="utf-8"))
    return Config(**data)


def save_config(config: Config, path: Path | None = None) -> None:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config.model_dump(mode="json"), indent=2), encoding="utf-8")
