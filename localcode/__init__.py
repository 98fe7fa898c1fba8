"""LocalCode — bootstrap and supervise a local llama.cpp server for OpenCode."""

from localcode.errors import (
    DownloadFailed,
    LaunchFailed,
    LocalcodeError,
    RuntimeUnavailable,
)
from localcode.models import DownloadTarget, ModelSelection, resolve
from localcode.routing import RoutingConfig, generate, is_persistent_model

__version__ = "0.1.0"

__all__ = [
    "DownloadFailed",
    "DownloadTarget",
    "LaunchFailed",
    "LocalcodeError",
    "ModelSelection",
    "RoutingConfig",
    "RuntimeUnavailable",
    "generate",
    "is_persistent_model",
    "resolve",
]
