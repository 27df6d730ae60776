"""File-based persistence for calculation results."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..config import settings
from ..models.domain import CalculationResult
from ..services.outputs.formatter import calculation_to_dict

logger = logging.getLogger(__name__)


class FileStorage:
    """Thin wrapper around the data root for storing JSON outputs."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "calculations"
        self.output_root.mkdir(parents=True, exist_ok=True)

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=indent)

    def read_json(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)


class FileCalculationStore:
    """Write-once JSON documents under ``<data_root>/calculations/<business_id>/<id>.json``."""

    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()

    def _path(self, business_id: str, calculation_id: str) -> Path:
        return self.storage.output_root / business_id / f"{calculation_id}.json"

    async def save(self, result: CalculationResult) -> None:
        path = self._path(result.business_id, result.id)
        if path.exists():
            raise FileExistsError(f"Calculation {result.id} has already been stored.")
        await asyncio.to_thread(self.storage.write_json, path, calculation_to_dict(result))
        logger.debug(f"Stored calculation {result.id} at {path}")

    async def get(self, calculation_id: str) -> Optional[dict[str, Any]]:
        matches = list(self.storage.output_root.glob(f"*/{calculation_id}.json"))
        if not matches:
            return None
        return await asyncio.to_thread(self.storage.read_json, matches[0])
