"""Data classes for model selections and their resolved download sources."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ModelSelection:
    """One model the user wants served."""

    name: str
    quant: Optional[str] = None  # e.g. "Q4_K_M"; None means catalog lookup

    @classmethod
    def parse(cls, spec: str) -> "ModelSelection":
        """Parse ``name`` or ``name:QUANT`` into a selection.

        Only the last ``:`` separates the quant so that names containing a
        colon survive.
        """
        spec = spec.strip()
        if ":" in spec:
            name, quant = spec.rsplit(":", 1)
            return cls(name=name.strip(), quant=quant.strip() or None)
        return cls(name=spec)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelSelection":
        return cls(name=data["name"], quant=data.get("quant"))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DownloadTarget:
    """Resolved download source for a selection.

    ``repo_id`` is empty when the catalog stores a full URL; ``file_ref``
    then holds that URL rather than a file name inside a repo.
    """

    repo_id: str
    file_ref: Optional[str] = None

    @property
    def is_structured(self) -> bool:
        return bool(self.repo_id)
