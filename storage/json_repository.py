"""JSON-file persistence for the last observed price."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from storage.models import PriceHistory, is_valid_price

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class PriceHistoryRepository:
    """Reads and rewrites {"lastPrice": ..., "lastUpdate": ...} as a whole file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def load(self) -> PriceHistory:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._load_sync)

    def _load_sync(self) -> PriceHistory:
        if not self.path.exists():
            return PriceHistory()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load price history from %s: %s", self.path, exc)
            return PriceHistory()
        if not isinstance(data, dict):
            logger.error("Ignoring malformed price history in %s", self.path)
            return PriceHistory()

        last_price = data.get("lastPrice")
        if last_price is not None and not is_valid_price(last_price):
            logger.warning("Discarding invalid stored price %r", last_price)
            last_price = None
        return PriceHistory(
            last_price=float(last_price) if last_price is not None else None,
            last_update=_parse_timestamp(data.get("lastUpdate")),
        )

    async def save(self, history: PriceHistory) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._save_sync, history)

    def _save_sync(self, history: PriceHistory) -> None:
        payload = {
            "lastPrice": history.last_price,
            "lastUpdate": _format_timestamp(history.last_update),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
