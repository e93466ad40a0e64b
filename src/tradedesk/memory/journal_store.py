"""Persist journal entries in memory with an optional JSON-lines audit trail."""

import asyncio
import copy
import json
import logging
import uuid
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Mapping,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


class JournalStore:
    """
    Newest-first journal per session.

    ``append`` updates the in-memory journal synchronously; only the audit-log write runs in a worker
    thread.  Callers still serialize writes per account (see ``DeskRuntimeContext``) so audit lines
    keep journal order.
    """

    def __init__(self, log_path: str | Path | None = None) -> None:
        self._entries: Dict[str, List[Dict[str, Any]]] = {}
        self._log_path = Path(log_path) if log_path else None

    def init(self) -> None:
        """
        Ensure the audit log exists.
        This is called at application startup to prepare the environment.
        """
        if self._log_path is None:
            return
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        if not self._log_path.exists():
            self._log_path.touch()  # Create an empty file if it doesn't exist

    def list_entries(self, session_id: str = DEFAULT_SESSION, limit: int | None = None) -> List[Dict[str, Any]]:
        """Return a copy of the newest *limit* entries."""
        entries = self._entries.get(session_id, [])
        if limit is not None:
            entries = entries[: max(limit, 0)]
        return copy.deepcopy(entries)

    async def append(self, payload: Mapping[str, Any], session_id: str = DEFAULT_SESSION) -> Dict[str, Any]:
        """Normalize *payload* into an entry and prepend it to the session journal."""
        entry = _normalize_entry(payload)
        # Update memory before the first await so a cancelled caller cannot lose the entry.
        self._entries.setdefault(session_id, []).insert(0, entry)
        if self._log_path is not None:
            await asyncio.to_thread(self._write_log, session_id, entry)
        logger.debug("Journal entry %s saved for session '%s'", entry["id"], session_id)
        return copy.deepcopy(entry)

    def _write_log(self, session_id: str, entry: Dict[str, Any]) -> None:
        # Flat-file audit trail
        with self._log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps({"session_id": session_id, "entry": entry}, default=str) + "\n")


def _normalize_entry(payload: Mapping[str, Any]) -> Dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    tags = payload.get("tags") or []
    if isinstance(tags, str):
        tags = [tags]
    symbol = payload.get("symbol")
    return {
        **{k: v for k, v in payload.items() if v is not None},
        "id": payload.get("id") or f"entry_{uuid.uuid4().hex[:12]}",
        "created_at": payload.get("created_at") or now,
        "symbol": str(symbol).upper() if symbol else "UNKNOWN",
        "source": payload.get("source") or "agent",
        "status": payload.get("status") or "planned",
        "tags": [str(t) for t in tags],
    }
