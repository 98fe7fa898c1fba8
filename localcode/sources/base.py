"""Base class for weight download clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class SourceResult:
    """Result from a source backend resolve/download operation."""

    path: str  # local file path inside the cache
    source_type: str  # "huggingface"
    cached: bool = False  # whether the file was already present
    repo_id: Optional[str] = None
    filename: Optional[str] = None


class SourceBackend:
    """Base class for download clients scoped to one cache directory.

    Subclasses implement ``is_available()``, ``resolve()``, and optionally
    ``check_cache()``.  ``resolve()`` must be a no-op for files that are
    already cached and verified.
    """

    name: str = "base"

    def __init__(self, cache_dir: Optional[str] = None) -> None:
        self.cache_dir = cache_dir

    def is_available(self) -> bool:
        """Check whether this backend is usable (deps installed, etc)."""
        raise NotImplementedError

    def check_cache(self, ref: str, filename: Optional[str] = None) -> Optional[str]:
        """Return the local path if *ref*/*filename* is already cached."""
        return None

    def resolve(self, ref: str, filename: Optional[str] = None) -> SourceResult:
        """Verify-or-fetch *filename* from *ref* into the cache.

        Parameters
        ----------
        ref:
            Repository reference (e.g. ``"bartowski/gemma-2-2b-it-GGUF"``).
        filename:
            File within the repository.
        """
        raise NotImplementedError
