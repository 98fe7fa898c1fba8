"""Map a model selection to the source its weights are downloaded from.

Two paths:

- **Quantized** (``quant`` set): dynamic naming against bartowski's GGUF
  re-uploads, ``bartowski/<base>-GGUF`` + ``<base>-<quant>.gguf``.  This
  path always wins, even when the name is also in the static catalog.
- **Catalog** (``quant`` absent): exact lookup in
  :mod:`localcode.models.catalog`, falling back to the default entry for
  unknown names.

Resolution is pure and never fails.
"""

from __future__ import annotations

from ._types import DownloadTarget, ModelSelection
from .catalog import default_entry, get_model

GGUF_PUBLISHER = "bartowski"


def model_basename(name: str) -> str:
    """Return the bare model name used in repo and file names.

    ``author/model`` -> ``model``; names without ``/`` are returned as-is.
    Only the second segment is used, so ``a/b/c`` -> ``b``.
    """
    parts = name.split("/")
    return parts[1] if len(parts) > 1 else name


def resolve(selection: ModelSelection) -> DownloadTarget:
    """Resolve *selection* to a :class:`DownloadTarget`."""
    if selection.quant:
        base = model_basename(selection.name)
        return DownloadTarget(
            repo_id=f"{GGUF_PUBLISHER}/{base}-GGUF",
            file_ref=f"{base}-{selection.quant}.gguf",
        )

    entry = get_model(selection.name) or default_entry()
    return DownloadTarget(repo_id=entry.repo_id, file_ref=entry.file_ref)
