"""Model selections, the static catalog, and source resolution."""

from ._types import DownloadTarget, ModelSelection
from .catalog import CATALOG, DEFAULT_MODEL, CatalogEntry, get_model, list_models
from .resolver import model_basename, resolve

__all__ = [
    "CATALOG",
    "DEFAULT_MODEL",
    "CatalogEntry",
    "DownloadTarget",
    "ModelSelection",
    "get_model",
    "list_models",
    "model_basename",
    "resolve",
]
