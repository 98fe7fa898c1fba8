"""Static catalog of known model identifiers.

Used when a selection carries no quantization.  Each entry points at a
single GGUF file on HuggingFace.  Entries are stored as full resolve URLs,
so they resolve to a :class:`DownloadTarget` with an empty ``repo_id``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_HF = "https://huggingface.co"


@dataclass(frozen=True)
class CatalogEntry:
    """A known model and where its weights live."""

    repo_id: str  # empty when only a full URL is known
    file_ref: str  # filename within repo_id, or a full URL


CATALOG: dict[str, CatalogEntry] = {
    "llama3-70b-instruct": CatalogEntry(
        "",
        f"{_HF}/lmstudio-community/Meta-Llama-3-70B-Instruct-GGUF/resolve/main/"
        "Meta-Llama-3-70B-Instruct-Q4_K_M.gguf",
    ),
    "mixtral-8x7b-instruct": CatalogEntry(
        "",
        f"{_HF}/TheBloke/Mixtral-8x7B-Instruct-v0.1-GGUF/resolve/main/"
        "mixtral-8x7b-instruct-v0.1.Q4_K_M.gguf",
    ),
    "llama3-8b-instruct": CatalogEntry(
        "",
        f"{_HF}/lmstudio-community/Meta-Llama-3-8B-Instruct-GGUF/resolve/main/"
        "Meta-Llama-3-8B-Instruct-Q4_K_M.gguf",
    ),
    "phi3-mini": CatalogEntry(
        "",
        f"{_HF}/microsoft/Phi-3-mini-4k-instruct-gguf/resolve/main/"
        "Phi-3-mini-4k-instruct-q4.gguf",
    ),
    "gemma-2b-it": CatalogEntry(
        "",
        f"{_HF}/google/gemma-2b-it-GGUF/resolve/main/2b-it-v1.1-q4_k_m.gguf",
    ),
    "qwen2-7b-instruct": CatalogEntry(
        "",
        f"{_HF}/Qwen/Qwen2-7B-Instruct-GGUF/resolve/main/"
        "qwen2-7b-instruct-q4_k_m.gguf",
    ),
    "mistral-7b-instruct": CatalogEntry(
        "",
        f"{_HF}/TheBloke/Mistral-7B-Instruct-v0.2-GGUF/resolve/main/"
        "mistral-7b-instruct-v0.2.Q4_K_M.gguf",
    ),
}

DEFAULT_MODEL = "llama3-8b-instruct"


def get_model(name: str) -> Optional[CatalogEntry]:
    """Look up a model by exact name. Returns None if unknown."""
    return CATALOG.get(name)


def default_entry() -> CatalogEntry:
    return CATALOG[DEFAULT_MODEL]


def list_models() -> list[str]:
    """Return catalog names in declaration order."""
    return list(CATALOG)
