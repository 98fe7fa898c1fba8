"""Weight download clients and the pre-start download step."""

from .base import SourceBackend, SourceResult
from .downloader import (
    DownloadProgress,
    DownloadStatus,
    download_models,
    ensure,
    hub_cache_dir,
)
from .huggingface import HuggingFaceSource

__all__ = [
    "DownloadProgress",
    "DownloadStatus",
    "HuggingFaceSource",
    "SourceBackend",
    "SourceResult",
    "download_models",
    "ensure",
    "hub_cache_dir",
]
