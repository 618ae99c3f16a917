"""Document-scoped property storage.

Each document owns a flat string-to-string property bag holding its publish
configuration and last-published timestamp. Saving replaces the whole bag.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from pathlib import Path

from sheetpublish.exceptions import PropertyStoreError


class PropertyStore(ABC):
    """Abstract base class for per-document property bags."""

    @abstractmethod
    def load(self, document_id: str) -> dict[str, str]:
        """Return the document's properties, or an empty dict if none exist."""
        ...

    @abstractmethod
    def save(self, document_id: str, props: dict[str, str]) -> None:
        """Replace the document's properties."""
        ...


class MemoryPropertyStore(PropertyStore):
    """Property store kept in a dict."""

    def __init__(self, initial: dict[str, dict[str, str]] | None = None) -> None:
        self._docs: dict[str, dict[str, str]] = {
            doc: dict(props) for doc, props in (initial or {}).items()
        }

    def load(self, document_id: str) -> dict[str, str]:
        return dict(self._docs.get(document_id, {}))

    def save(self, document_id: str, props: dict[str, str]) -> None:
        self._docs[document_id] = dict(props)


class JsonFilePropertyStore(PropertyStore):
    """Property store with one JSON file per document.

    Files live at ``<state_dir>/properties/<document_id>.json``.
    """

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the store.

        Args:
            state_dir: Base directory for sheetpublish state
        """
        self._dir = Path(state_dir).expanduser() / "properties"

    def path_for(self, document_id: str) -> Path:
        """Return the file holding a document's properties."""
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", document_id)
        return self._dir / f"{safe_id}.json"

    def load(self, document_id: str) -> dict[str, str]:
        path = self.path_for(document_id)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PropertyStoreError(str(path), str(e)) from e
        if not isinstance(data, dict):
            raise PropertyStoreError(str(path), "expected a JSON object")
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def save(self, document_id: str, props: dict[str, str]) -> None:
        path = self.path_for(document_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            json_str = json.dumps(props, indent=2, sort_keys=True, ensure_ascii=False)
            path.write_text(json_str, encoding="utf-8")
        except OSError as e:
            raise PropertyStoreError(str(path), str(e)) from e
