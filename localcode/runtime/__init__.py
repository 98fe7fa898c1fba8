"""Container lifecycle for the local model server."""

from .container import (
    CONTAINER_NAME,
    CPU_IMAGE,
    DEFAULT_PORT,
    GPU_IMAGE,
    INTERNAL_PORT,
    TOOLKIT_INSTALL_URL,
    ContainerManager,
    ServerState,
    ServerStatus,
    StartResult,
    is_gpu_unavailable,
)

__all__ = [
    "CONTAINER_NAME",
    "CPU_IMAGE",
    "DEFAULT_PORT",
    "GPU_IMAGE",
    "INTERNAL_PORT",
    "TOOLKIT_INSTALL_URL",
    "ContainerManager",
    "ServerState",
    "ServerStatus",
    "StartResult",
    "is_gpu_unavailable",
]
