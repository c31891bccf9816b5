"""Key-value save stores the engine can persist snapshots to."""
from __future__ import annotations

import copy
import json
import re
import time
from pathlib import Path
from typing import Any, Protocol

import structlog

from tick_factory.types import SaveRecord

logger = structlog.get_logger(__name__)

_SAVE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class SaveStore(Protocol):
    def store(self, save_id: str, data: dict[str, Any]) -> None: ...

    def load(self, save_id: str) -> dict[str, Any] | None: ...

    def list_saves(self) -> list[SaveRecord]: ...

    def delete(self, save_id: str) -> bool: ...


class MemorySaveStore:
    """In-process store. Data is deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._records: dict[str, SaveRecord] = {}

    def store(self, save_id: str, data: dict[str, Any]) -> None:
        self._records[save_id] = SaveRecord(save_id, time.time(), copy.deepcopy(data))

    def load(self, save_id: str) -> dict[str, Any] | None:
        record = self._records.get(save_id)
        return copy.deepcopy(record.data) if record is not None else None

    def list_saves(self) -> list[SaveRecord]:
        return sorted(self._records.values(), key=lambda r: r.timestamp)

    def delete(self, save_id: str) -> bool:
        return self._records.pop(save_id, None) is not None


class JsonFileSaveStore:
    """One ``<save_id>.json`` file per save inside ``directory``."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, save_id: str) -> Path:
        if not _SAVE_ID_RE.match(save_id):
            raise ValueError(f"Invalid save id: {save_id!r}")
        return self._directory / f"{save_id}.json"

    def store(self, save_id: str, data: dict[str, Any]) -> None:
        path = self._path(save_id)
        record = {"id": save_id, "timestamp": time.time(), "data": data}
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(record), encoding="utf-8")
        tmp.replace(path)
        logger.debug("save_written", save_id=save_id, path=str(path))

    def _read(self, path: Path) -> SaveRecord | None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return SaveRecord(raw["id"], raw["timestamp"], raw["data"])
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.warning("save_corrupt", path=str(path))
            return None

    def load(self, save_id: str) -> dict[str, Any] | None:
        path = self._path(save_id)
        if not path.exists():
            return None
        record = self._read(path)
        return record.data if record is not None else None

    def list_saves(self) -> list[SaveRecord]:
        records = []
        for path in self._directory.glob("*.json"):
            record = self._read(path)
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.timestamp)

    def delete(self, save_id: str) -> bool:
        path = self._path(save_id)
        if not path.exists():
            return False
        path.unlink()
        return True
