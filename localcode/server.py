"""Start and stop the local model server.

``start_server`` runs the whole startup sequence in order: resolve and
cache weights, generate the routing config, then launch the container.
A download failure stops the sequence before docker is touched.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Optional, Sequence

from .models import ModelSelection
from .routing import generate
from .runtime.container import DEFAULT_PORT, ContainerManager, StartResult
from .sources import SourceBackend, download_models
from .sources.downloader import ProgressCallback

logger = logging.getLogger(__name__)


async def start_server(
    selections: Sequence[ModelSelection],
    models_dir: str,
    port: int = DEFAULT_PORT,
    *,
    manager: Optional[ContainerManager] = None,
    source: Optional[SourceBackend] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_fallback: Optional[Callable[[str], None]] = None,
) -> StartResult:
    """Download weights for *selections* and launch the server container.

    Raises
    ------
    ValueError
        If *selections* is empty.
    DownloadFailed
        If any model's weights could not be fetched. No container is started.
    RuntimeUnavailable, LaunchFailed
        From :meth:`ContainerManager.start`.
    """
    if not selections:
        raise ValueError("No models selected")

    models_dir = os.path.expanduser(models_dir)
    os.makedirs(models_dir, exist_ok=True)

    manager = manager or ContainerManager()
    if on_fallback is not None:
        manager.on_fallback = on_fallback

    await asyncio.to_thread(
        download_models,
        selections,
        models_dir,
        source=source,
        on_progress=on_progress,
    )

    config = generate(selections)
    return await manager.start(config, models_dir, port=port)


async def stop_server(manager: Optional[ContainerManager] = None) -> bool:
    """Remove the server container. Returns False if nothing was running."""
    manager = manager or ContainerManager()
    return await manager.stop()
