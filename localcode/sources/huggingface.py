"""HuggingFace Hub source backend.

Wraps ``huggingface_hub.hf_hub_download()`` for single GGUF files.  The
cache directory is the ``hub`` folder under the models directory, which
is what the server container sees as ``$HF_HOME/hub``.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from .base import SourceBackend, SourceResult

logger = logging.getLogger(__name__)


class HuggingFaceSource(SourceBackend):
    """Download model files from HuggingFace Hub into a local cache."""

    name = "huggingface"

    def is_available(self) -> bool:
        """Check if huggingface_hub is installed."""
        try:
            import huggingface_hub  # noqa: F401

            return True
        except ImportError:
            return False

    def check_cache(self, ref: str, filename: Optional[str] = None) -> Optional[str]:
        """Check if a model file is already in the cache.

        Returns the cached path if found, None otherwise.
        """
        if not filename:
            return None
        try:
            from huggingface_hub import try_to_load_from_cache

            result = try_to_load_from_cache(ref, filename, cache_dir=self.cache_dir)
            if isinstance(result, str) and os.path.exists(result):
                return result
        except Exception as exc:
            logger.debug("HuggingFace cache check failed: %s", exc)
        return None

    def resolve(self, ref: str, filename: Optional[str] = None) -> SourceResult:
        """Download *filename* from the HuggingFace repo *ref*.

        ``hf_hub_download`` skips files whose cached copy matches the
        remote etag, so an interrupted or stale file is re-fetched.
        """
        if not filename:
            raise ValueError(f"No file given for HuggingFace repo '{ref}'")

        cached_path = self.check_cache(ref, filename)
        if cached_path:
            logger.info("HuggingFace cache hit: %s", cached_path)
            return SourceResult(
                path=cached_path,
                source_type="huggingface",
                cached=True,
                repo_id=ref,
                filename=filename,
            )

        from huggingface_hub import hf_hub_download

        logger.info("Downloading %s/%s from HuggingFace...", ref, filename)
        path = hf_hub_download(repo_id=ref, filename=filename, cache_dir=self.cache_dir)
        return SourceResult(
            path=path,
            source_type="huggingface",
            cached=False,
            repo_id=ref,
            filename=filename,
        )
