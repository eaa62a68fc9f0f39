"""Durable snapshot store — write-ahead-then-acknowledge for the service.

The whole platform state (ledger, engine, custody, collaborators, pause
flag) is one JSON document. ``save`` writes it to a temporary file in the
same directory, fsyncs, and atomically replaces the previous snapshot, so
a crash at any point leaves either the old or the new state on disk and
never a partial one.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

SCHEMA_VERSION = 1


class StateStore:
    """Atomic JSON snapshot file.

    Usage:
        store = StateStore(data_dir / "state.json")
        store.save(state_dict)
        state = store.load()  # None if nothing committed yet
    """

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = Path(storage_path)

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def load(self) -> Optional[dict[str, Any]]:
        if not self._storage_path.exists():
            return None
        document = json.loads(self._storage_path.read_text(encoding="utf-8"))
        version = document.get("schema_version")
        if version != SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported state schema version {version} in {self._storage_path}"
            )
        return document["state"]

    def save(self, state: dict[str, Any]) -> None:
        """Durably replace the stored snapshot. Raises OSError on failure."""
        directory = self._storage_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        document = {"schema_version": SCHEMA_VERSION, "state": state}
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._storage_path.name}.", suffix=".tmp", dir=directory,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, sort_keys=True, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._storage_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
