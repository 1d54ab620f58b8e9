"""
Change Ledger — Append-only NDJSON record of mirror notifications.

One JSON object per line: a full_list or diff notification for one mirror.
Lines are only ever appended, so the file doubles as a change history.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..mirror.diff import FileDiff
from ..mirror.observers import RepositoryObserver


class ChangeLedger:
    """
    Append-only NDJSON ledger writer.

    Usage:
        ledger = ChangeLedger(Path("audit/changes.ndjson"))
        ledger.emit("diff", repo="cards", details={"added": ["a.cdb"]})
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    def emit(
        self,
        event_type: str,
        repo: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Append one event.

        Args:
            event_type: full_list or diff
            repo: Repository name or path
            details: Event payload

        Returns:
            Generated event_id
        """
        event_id = f"E-{uuid4().hex[:8].upper()}"
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        entry: Dict[str, Any] = {
            "ts_iso": now,
            "event_id": event_id,
            "repo": repo,
            "type": event_type,
        }
        if details is not None:
            entry["details"] = details

        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")

        return event_id

    def read(self) -> List[Dict[str, Any]]:
        """Return every event in the ledger, oldest first."""
        events = []
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    events.append(json.loads(line))
        return events


class LedgerObserver(RepositoryObserver):
    """Records every notification it receives in a ChangeLedger."""

    def __init__(self, ledger: ChangeLedger, repo: str):
        self.ledger = ledger
        self.repo = repo

    def on_full_list(self, path: Path, files: List[str]) -> None:
        self.ledger.emit(
            "full_list",
            repo=self.repo,
            details={"path": str(path), "count": len(files)},
        )

    def on_diff(self, path: Path, diff: FileDiff) -> None:
        details: Dict[str, Any] = {"path": str(path)}
        details.update(diff.to_dict())
        self.ledger.emit("diff", repo=self.repo, details=details)
