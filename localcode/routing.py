"""Multi-model routing config for the llama-swap proxy.

The proxy reads a YAML document with one ``models`` entry per model (the
command it runs to serve that model on demand) and an optional ``groups``
section.  Small, fast models (autocomplete candidates) are put in a
persistent group so they stay loaded and are never swapped out for a
larger chat model.

Example output::

    models:
      llama3-8b-instruct:
        cmd: /app/llama-server --port ${PORT} --hf-file https://... --ctx-size 8192
      qwen2.5-coder-1.5b-instruct:
        cmd: /app/llama-server --port ${PORT} --hf-repo bartowski/... --hf-file ...
    groups:
      autocomplete:
        persistent: true
        swap: false
        exclusive: false
        members:
        - qwen2.5-coder-1.5b-instruct
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Sequence

import yaml

from .models import DownloadTarget, ModelSelection, resolve

logger = logging.getLogger(__name__)

SERVER_BINARY = "/app/llama-server"
PORT_PLACEHOLDER = "${PORT}"
DEFAULT_CTX_SIZE = 8192
PERSISTENT_GROUP = "autocomplete"

# Substrings that mark a model as small enough to keep resident.
_PERSISTENT_HINTS = ("mini", "coder", "1.5b", "2b", "0.5b")


def is_persistent_model(name: str) -> bool:
    """Return True for small/fast models that should stay loaded.

    Case-insensitive substring match on size hints.  Note that ``"2b"``
    also matches names like ``"32b"``.
    """
    lowered = name.lower()
    return any(hint in lowered for hint in _PERSISTENT_HINTS)


def build_command(target: DownloadTarget, ctx_size: int = DEFAULT_CTX_SIZE) -> str:
    """Build the launch line for one model.

    ``--hf-repo``/``--hf-file`` are only emitted for non-empty fields; an
    empty flag value breaks the proxy's command parser.
    """
    parts = [SERVER_BINARY, "--port", PORT_PLACEHOLDER]
    if target.repo_id:
        parts.extend(["--hf-repo", target.repo_id])
    if target.file_ref:
        parts.extend(["--hf-file", target.file_ref])
    parts.extend(["--ctx-size", str(ctx_size)])
    return " ".join(parts)


@dataclass(frozen=True)
class ModelRoute:
    """Launch entry for one model."""

    name: str
    cmd: str
    target: DownloadTarget


@dataclass
class RoutingConfig:
    """Ordered model routes plus the persistent group members."""

    models: dict[str, ModelRoute] = field(default_factory=dict)
    persistent_group: list[str] = field(default_factory=list)

    @property
    def model_names(self) -> list[str]:
        return list(self.models)

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "models": {name: {"cmd": route.cmd} for name, route in self.models.items()}
        }
        if self.persistent_group:
            doc["groups"] = {
                PERSISTENT_GROUP: {
                    "persistent": True,
                    "swap": False,
                    "exclusive": False,
                    "members": list(self.persistent_group),
                }
            }
        return doc

    def to_yaml(self) -> str:
        return render_yaml(self)


def generate(
    selections: Sequence[ModelSelection],
    ctx_size: int = DEFAULT_CTX_SIZE,
) -> RoutingConfig:
    """Build a :class:`RoutingConfig` for *selections*, preserving their order.

    A model name selected twice keeps its first position; the later
    selection's command wins.
    """
    config = RoutingConfig()
    for selection in selections:
        target = resolve(selection)
        route = ModelRoute(
            name=selection.name,
            cmd=build_command(target, ctx_size=ctx_size),
            target=target,
        )
        config.models[selection.name] = route
        if is_persistent_model(selection.name) and selection.name not in config.persistent_group:
            config.persistent_group.append(selection.name)
    logger.debug(
        "Generated routing config for %d model(s), persistent=%s",
        len(config.models),
        config.persistent_group,
    )
    return config


def render_yaml(config: RoutingConfig) -> str:
    """Serialize *config* to YAML, keeping insertion order."""
    return yaml.safe_dump(config.to_dict(), sort_keys=False, default_flow_style=False)


def write_routing_config(config: RoutingConfig, path: str) -> str:
    """Write *config* as YAML to *path*, creating parent dirs. Returns the path."""
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(render_yaml(config))
    logger.info("Wrote routing config to %s", path)
    return path
