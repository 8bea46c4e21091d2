"""Session persistence — remember which sessions were open, not their content."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import aiofiles
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class SessionSnapshot(BaseModel):
    """One persisted session record."""

    id: str
    title: str = Field(default="")


_SNAPSHOTS = TypeAdapter(list[SessionSnapshot])


class SessionStore:
    """JSON file holding the ordered list of open sessions.

    Reads and writes go through aiofiles so the event loop never blocks
    on disk I/O. A missing or unreadable file is treated as "no sessions".
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def save(self, snapshots: list[SessionSnapshot]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            [s.model_dump() for s in snapshots], ensure_ascii=False, indent=2
        )
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(payload)
        tmp.replace(self.path)
        logger.debug("Saved %d session(s) to %s", len(snapshots), self.path)

    async def load(self) -> list[SessionSnapshot]:
        if not self.path.exists():
            return []
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return []
        try:
            return _SNAPSHOTS.validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return []
