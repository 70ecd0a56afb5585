"""
Processing Ledger

Persisted record of which transcripts have been processed, plus the cutoff
date before which transcripts are ignored.

The ledger is persisted to ~/.storyforge/processed_transcripts.json and
rewritten wholesale after every mutation:

    {
      "processedIds": ["page-id", ...],
      "lastUpdated": "2026-01-01T00:00:00+00:00",
      "cutoffDate": "2026-01-01T00:00:00+00:00"
    }

Rules:
1. A document is eligible iff its ID is not recorded and it was created
   strictly after the cutoff date
2. The cutoff date is fixed on first initialization and never reset
3. Load failures degrade to an empty in-memory ledger (logged, not fatal)
4. Save failures are logged; the next mutation rewrites the whole file
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Any, List, Optional

from ..common.config import LEDGER_PATH

logger = logging.getLogger("storyforge.pipeline.ledger")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class ProcessingLedger:
    """
    Single source of truth for transcript deduplication.

    All mutations go through one lock, so concurrent entry points
    (scheduler, webhook, on-demand calls) serialize their writes.

    Args:
        ledger_path: Path to the ledger file
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        ledger_path: Optional[Path] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._path = Path(ledger_path) if ledger_path else LEDGER_PATH
        self._clock = clock or _utcnow
        self._lock = threading.RLock()
        self._processed_ids: List[str] = []
        self._processed_set = set()
        self.cutoff_date: Optional[datetime] = None
        self.last_updated: Optional[datetime] = None
        self.degraded = False
        self.dirty = False
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def processed_ids(self) -> List[str]:
        with self._lock:
            return list(self._processed_ids)

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._processed_set

    def __len__(self) -> int:
        return len(self._processed_ids)

    def load(self) -> None:
        """Load the ledger from disk, initializing it on first run"""
        with self._lock:
            if not self._path.exists():
                self._reset_in_memory()
                logger.info("Initialized processed transcripts tracking with cutoff: %s",
                            self.cutoff_date.isoformat())
                self.save()
                return

            try:
                with open(self._path) as f:
                    data = json.load(f)
                ids = [str(i) for i in data.get("processedIds", [])]
            except (json.JSONDecodeError, IOError, AttributeError, TypeError) as e:
                logger.error("Failed to load processed transcripts from %s: %s", self._path, e)
                self._reset_in_memory()
                self.degraded = True
                return

            self._processed_ids = list(dict.fromkeys(ids))
            self._processed_set = set(self._processed_ids)
            self.last_updated = _parse_iso(data.get("lastUpdated"))
            self.cutoff_date = _parse_iso(data.get("cutoffDate"))
            self.degraded = False

            if self.cutoff_date is None:
                self.cutoff_date = self._clock()
                logger.info("Set transcript cutoff date to: %s", self.cutoff_date.isoformat())
                self.save()

            logger.info("Loaded %d processed transcript IDs", len(self._processed_ids))

    def _reset_in_memory(self) -> None:
        self._processed_ids = []
        self._processed_set = set()
        self.cutoff_date = self._clock()
        self.last_updated = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processedIds": list(self._processed_ids),
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else "",
            "cutoffDate": self.cutoff_date.isoformat() if self.cutoff_date else "",
        }

    def save(self) -> bool:
        """Rewrite the ledger file. Returns False (and stays dirty) on I/O failure."""
        with self._lock:
            self.last_updated = self._clock()
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "w") as f:
                    json.dump(self.to_dict(), f, indent=2)
                os.replace(tmp_path, self._path)
            except OSError as e:
                logger.error("Failed to save processed transcripts to %s: %s", self._path, e)
                self.dirty = True
                return False
            self.dirty = False
            return True

    def is_eligible(self, document_id: str, created_at: Optional[datetime]) -> bool:
        """True iff the document was never processed and is newer than the cutoff"""
        with self._lock:
            if document_id in self._processed_set:
                return False
            if created_at is None:
                logger.info("Skipping transcript %s with unknown creation time", document_id)
                return False
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            if created_at <= self.cutoff_date:
                logger.info("Skipping old transcript %s (%s) - before cutoff (%s)",
                            document_id, created_at.isoformat(), self.cutoff_date.isoformat())
                return False
            return True

    def mark_processed(self, document_id: str) -> bool:
        """Record a document as processed. Idempotent.

        Returns:
            True if the ID was newly added
        """
        with self._lock:
            if document_id in self._processed_set:
                return False
            self._processed_ids.append(document_id)
            self._processed_set.add(document_id)
            self.save()
            logger.info("Marked transcript %s as processed", document_id)
            return True

    def get_stats(self) -> Dict[str, Any]:
        return {
            "processed": len(self._processed_ids),
            "cutoff_date": self.cutoff_date.isoformat() if self.cutoff_date else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "degraded": self.degraded,
            "dirty": self.dirty,
        }
