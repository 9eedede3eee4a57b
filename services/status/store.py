"""
Persisted dispatch history.

A single JSON document holding the most recent outcomes, newest first.

Rules:
- At most MAX_ENTRIES entries
- Missing or corrupt storage reads as an empty history
- Writes replace the document atomically

Known limitation: record() is an unlocked read-modify-write. Two dispatches
finishing at the same moment can both read the old history, and the later
write drops the earlier entry.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from transport.alexa.schemas import StatusEntry

logger = logging.getLogger(__name__)


MAX_ENTRIES = 25


class StatusStore:
    """Bounded, file-backed history of StatusEntry records."""

    def __init__(self, path: Union[str, Path], max_entries: int = MAX_ENTRIES):
        self.path = Path(path).expanduser()
        self.max_entries = max_entries

    def entries(self) -> List[StatusEntry]:
        """Full persisted sequence, newest first."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning(f"Status history unreadable, treating as empty: {e}")
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Status history is corrupt, treating as empty", extra={"path": str(self.path)})
            return []

        if not isinstance(data, list):
            logger.warning("Status history is not a list, treating as empty", extra={"path": str(self.path)})
            return []

        entries = []
        for item in data:
            try:
                entries.append(StatusEntry.model_validate(item))
            except ValidationError:
                logger.debug(f"Dropping malformed status entry: {item!r}")
        return entries

    def latest(self) -> Optional[StatusEntry]:
        entries = self.entries()
        return entries[0] if entries else None

    def record(self, entry: StatusEntry) -> None:
        """Prepend entry, keep the newest max_entries, write back atomically."""
        entries = [entry] + self.entries()
        entries = entries[: self.max_entries]
        self._write(entries)
        logger.info(
            "Status recorded",
            extra={"status": entry.status, "intent": entry.intent, "count": len(entries)},
        )

    def _write(self, entries: List[StatusEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([e.model_dump() for e in entries], indent=2)

        fd, tmp_path = tempfile.mkstemp(prefix=".status-", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
