"""Chargement des colormaps de labels (JSON local ou distant)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import unquote, urljoin, urlparse
from urllib.request import url2pathname

import requests

from models.volume import ColormapLabel
from services.errors import ColormapError


def resolve_resource_url(path: str, root_url: str) -> str:
    """
    Resolve a catalog resource path against the options root URL.

    ``./x`` and bare ``x`` are taken relative to the root; absolute URLs are
    kept as is.
    """
    if path.startswith(("http://", "https://", "file://")):
        return path
    relative = path[2:] if path.startswith("./") else path.lstrip("/")
    base = root_url or ""
    if base and not base.endswith("/"):
        base += "/"
    if not base:
        return relative
    return urljoin(base, relative)


class ColormapLoader:
    """Fetches ``{R, G, B, labels}`` documents and validates them."""

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.logger = logging.getLogger(__name__)
        self.timeout = timeout
        self.session = session

    def load(self, path: str, root_url: str = "") -> ColormapLabel:
        url = resolve_resource_url(path, root_url)
        raw = self._fetch(url)
        return self.parse(raw, source=url)

    def _fetch(self, url: str) -> Any:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            getter = self.session.get if self.session is not None else requests.get
            try:
                response = getter(url, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as exc:
                raise ColormapError(f"Unable to load {url}: {exc}") from exc

        if parsed.scheme == "file":
            file_path = Path(url2pathname(unquote(parsed.path)))
        else:
            file_path = Path(url)
        if not file_path.exists():
            raise ColormapError(f"Unable to load {url}: file not found")
        try:
            with file_path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ColormapError(f"Unable to load {url}: {exc}") from exc

    @staticmethod
    def parse(raw: Any, source: str = "<memory>") -> ColormapLabel:
        if not isinstance(raw, Mapping):
            raise ColormapError(f"Colormap {source} is not a JSON object.")
        missing = [key for key in ("R", "G", "B", "labels") if key not in raw]
        if missing:
            raise ColormapError(f"Colormap {source} lacks keys: {', '.join(missing)}")
        try:
            channels = [[int(v) for v in raw[key]] for key in ("R", "G", "B")]
        except (TypeError, ValueError) as exc:
            raise ColormapError(f"Colormap {source} has non-numeric channels: {exc}") from exc
        labels = raw["labels"]
        if not isinstance(labels, list) or not all(isinstance(label, str) for label in labels):
            raise ColormapError(f"Colormap {source} labels must be a list of strings.")
        return ColormapLabel(R=channels[0], G=channels[1], B=channels[2], labels=list(labels))
