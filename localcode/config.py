"""Saved setup: which models to serve, where weights live, and the port.

The setup is written by ``localcode init`` (outside this package) or by
``localcode start --save`` to ``./localcode.json`` for a project or
``~/.config/localcode/localcode.json`` globally.  The project file wins.
Environment variables override individual fields:

- ``LOCALCODE_CONFIG``: explicit path to the JSON file
- ``LOCALCODE_MODELS_DIR``: weights directory
- ``LOCALCODE_PORT``: host port
- ``LOCALCODE_IMAGE`` / ``LOCALCODE_CPU_IMAGE``: server images
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import ConfigNotFound
from .models import ModelSelection
from .runtime.container import CPU_IMAGE, DEFAULT_PORT, GPU_IMAGE

logger = logging.getLogger(__name__)

PROJECT_CONFIG = "localcode.json"


def global_config_path() -> str:
    return os.path.join(os.path.expanduser("~/.config/localcode"), PROJECT_CONFIG)


def default_models_dir() -> str:
    return os.path.join(os.path.expanduser("~/.opencode"), "models")


@dataclass
class LocalcodeConfig:
    """Resolved setup consumed by ``start``."""

    models: list[ModelSelection] = field(default_factory=list)
    models_dir: str = field(default_factory=default_models_dir)
    port: int = DEFAULT_PORT
    run_in_docker: bool = True
    image: str = GPU_IMAGE
    cpu_image: str = CPU_IMAGE
    path: Optional[str] = None  # file this was loaded from

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocalcodeConfig":
        models = [ModelSelection.from_dict(m) for m in data.get("models", [])]
        # Files written by the single-model setup flow.
        if not models and data.get("model_name"):
            models = [ModelSelection(data["model_name"], data.get("quant"))]
        return cls(
            models=models,
            models_dir=os.path.expanduser(data.get("models_dir") or default_models_dir()),
            port=int(data.get("port", DEFAULT_PORT)),
            run_in_docker=bool(data.get("run_in_docker", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "models": [m.to_dict() for m in self.models],
            "models_dir": self.models_dir,
            "port": self.port,
            "run_in_docker": self.run_in_docker,
        }

    def apply_env(self) -> "LocalcodeConfig":
        """Apply ``LOCALCODE_*`` overrides in place and return self."""
        models_dir = os.environ.get("LOCALCODE_MODELS_DIR")
        if models_dir:
            self.models_dir = os.path.expanduser(models_dir)
        port = os.environ.get("LOCALCODE_PORT")
        if port:
            try:
                self.port = int(port)
            except ValueError:
                logger.warning("Ignoring invalid LOCALCODE_PORT=%r", port)
        self.image = os.environ.get("LOCALCODE_IMAGE", self.image)
        self.cpu_image = os.environ.get("LOCALCODE_CPU_IMAGE", self.cpu_image)
        return self


def find_config_path() -> Optional[str]:
    """Return the config file to load, or None if there is none."""
    explicit = os.environ.get("LOCALCODE_CONFIG")
    if explicit:
        return explicit if os.path.exists(explicit) else None
    if os.path.exists(PROJECT_CONFIG):
        return PROJECT_CONFIG
    path = global_config_path()
    return path if os.path.exists(path) else None


def load_config(path: Optional[str] = None) -> LocalcodeConfig:
    """Load the saved setup and apply environment overrides.

    Raises
    ------
    ConfigNotFound
        If no config file exists.
    """
    path = path or find_config_path()
    if not path or not os.path.exists(path):
        raise ConfigNotFound(
            "Configuration not found. Please run `localcode init` first."
        )
    with open(path) as f:
        data = json.load(f)
    config = LocalcodeConfig.from_dict(data)
    config.path = path
    logger.debug("Loaded config from %s", path)
    return config.apply_env()


def save_config(config: LocalcodeConfig, path: Optional[str] = None) -> str:
    """Write *config* as JSON. Defaults to the global config path."""
    path = path or global_config_path()
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
        f.write("\n")
    return path
