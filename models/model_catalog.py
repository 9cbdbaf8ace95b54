from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional


@dataclass(frozen=True)
class ModelEntry:
    """One selectable segmentation model (immutable, read-only for the engine)."""

    id: int
    model_name: str
    inference: str
    colormap_path: Optional[str] = None
    warning: Optional[str] = None
    inference_args: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ModelEntry":
        return cls(
            id=int(raw["id"]),
            model_name=str(raw["model_name"]),
            inference=str(raw["inference"]),
            colormap_path=raw.get("colormap_path") or None,
            warning=raw.get("warning") or None,
            inference_args=dict(raw.get("inference_args") or {}),
        )


class ModelCatalog:
    """Ordered list of model entries, loaded once from static configuration."""

    def __init__(self, entries: Iterable[ModelEntry]) -> None:
        self._entries: List[ModelEntry] = list(entries)

    @classmethod
    def from_config(cls, raw_entries: Optional[Iterable[Mapping[str, Any]]] = None) -> "ModelCatalog":
        if raw_entries is None:
            from config.model_catalog import MODEL_CATALOG

            raw_entries = MODEL_CATALOG
        return cls(ModelEntry.from_dict(raw) for raw in raw_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def resolve(self, index: Any) -> Optional[ModelEntry]:
        """Return the entry at ``index`` (int or numeric string), or None."""
        if index is None or index == "":
            return None
        try:
            idx = int(index)
        except (TypeError, ValueError):
            return None
        if idx < 0 or idx >= len(self._entries):
            return None
        return self._entries[idx]

    def names(self) -> List[str]:
        return [entry.model_name for entry in self._entries]
