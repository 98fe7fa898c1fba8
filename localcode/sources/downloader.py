"""Make sure every selected model's weights are cached before the server starts.

Targets are processed one at a time in input order.  The first failure
aborts the batch with :class:`~localcode.errors.DownloadFailed`, naming the
model it belongs to, so the caller never launches a container that points
at a missing file.

Targets with an empty ``repo_id`` (catalog entries stored as a full URL)
are not fetched here.  They are reported as ``skipped`` and the server
container pulls them itself on first load.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..errors import DownloadFailed
from ..models import DownloadTarget, ModelSelection, resolve
from .base import SourceBackend
from .huggingface import HuggingFaceSource

logger = logging.getLogger(__name__)


class DownloadStatus(str, enum.Enum):
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    COMPLETE = "complete"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DownloadProgress:
    """Progress record for one model."""

    model: str
    status: DownloadStatus
    target: DownloadTarget
    path: Optional[str] = None
    cached: bool = False
    error: Optional[str] = None


ProgressCallback = Callable[[DownloadProgress], None]


def hub_cache_dir(models_dir: str) -> str:
    """Return the Hub cache folder inside *models_dir* (``$HF_HOME/hub``)."""
    return os.path.join(os.fspath(models_dir), "hub")


def ensure(
    targets: Sequence[DownloadTarget],
    cache_dir: str,
    *,
    names: Optional[Sequence[str]] = None,
    source: Optional[SourceBackend] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> list[DownloadProgress]:
    """Verify-or-fetch every structured target into *cache_dir*.

    Parameters
    ----------
    targets:
        Resolved download targets, in the order they should be fetched.
    cache_dir:
        Content cache directory, keyed by ``(repo_id, file_ref)``.
    names:
        Model names used for progress and error attribution.  Defaults to
        each target's ``file_ref``.
    source:
        Download client.  Defaults to a :class:`HuggingFaceSource` scoped to
        *cache_dir*.
    on_progress:
        Called on every state change (queued, downloading, complete,
        skipped, failed).

    Returns
    -------
    list[DownloadProgress]
        Final record per target, in input order.

    Raises
    ------
    DownloadFailed
        On the first network or integrity error.
    """
    if names is not None and len(names) != len(targets):
        raise ValueError("names must match targets one-to-one")

    labels = list(names) if names is not None else [
        t.file_ref or t.repo_id or "<unknown>" for t in targets
    ]
    client = source or HuggingFaceSource(cache_dir=cache_dir)

    def _emit(record: DownloadProgress) -> None:
        if on_progress is not None:
            on_progress(record)

    records = [
        DownloadProgress(model=label, status=DownloadStatus.QUEUED, target=target)
        for label, target in zip(labels, targets)
    ]
    for record in records:
        _emit(record)

    needs_client = [r for r in records if r.target.is_structured]
    if needs_client and not client.is_available():
        raise DownloadFailed(
            needs_client[0].model,
            RuntimeError(f"{client.name} download client is not installed"),
        )

    os.makedirs(cache_dir, exist_ok=True)

    for record in records:
        target = record.target
        if not target.is_structured:
            logger.warning(
                "Not pre-fetching %s: no repository reference (%s)",
                record.model,
                target.file_ref,
            )
            record.status = DownloadStatus.SKIPPED
            _emit(record)
            continue

        record.status = DownloadStatus.DOWNLOADING
        _emit(record)
        try:
            result = client.resolve(target.repo_id, target.file_ref)
        except Exception as exc:
            record.status = DownloadStatus.FAILED
            record.error = str(exc)
            _emit(record)
            raise DownloadFailed(record.model, exc) from exc

        record.status = DownloadStatus.COMPLETE
        record.path = result.path
        record.cached = result.cached
        _emit(record)

    return records


def download_models(
    selections: Sequence[ModelSelection],
    models_dir: str,
    *,
    source: Optional[SourceBackend] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> list[DownloadProgress]:
    """Resolve *selections* and cache their weights under *models_dir*."""
    os.makedirs(models_dir, exist_ok=True)
    targets = [resolve(s) for s in selections]
    return ensure(
        targets,
        hub_cache_dir(models_dir),
        names=[s.name for s in selections],
        source=source,
        on_progress=on_progress,
    )
