"""
Append-only audit trail of snapshot changes.

Each line records when the snapshot changed, a digest of the snapshot
content and a human-readable message::

    [2026-10-17T09:14:03+02:00] 3f9a1c0d2b7e Bulk task operation: append mode, 2 tasks

The trail is a convenience. Every failure here is logged and swallowed so
the snapshot write it describes is never affected.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)

DIGEST_LENGTH = 12
_ENTRY_RE = re.compile(r"^\[(?P<timestamp>[^\]]+)\] (?P<digest>[0-9a-f]+) (?P<message>.*)$")


class ChangeEntry(NamedTuple):
    timestamp: str
    digest: str
    message: str


def content_digest(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()[:DIGEST_LENGTH]


class ChangeLog:
    def __init__(self, path: Path, enabled: bool = True):
        self.path = Path(path)
        self.enabled = enabled
        self._last_digest: Optional[str] = None

    def record(self, timestamp: str, content: bytes, message: str) -> bool:
        """Append one entry; returns False when skipped or when writing failed."""
        if not self.enabled:
            return False
        try:
            digest = content_digest(content)
            if digest == self._last_recorded_digest():
                logger.debug("Snapshot unchanged, no change-log entry for: %s", message)
                return False
            # Entries stay single-line
            flat = " | ".join(part.strip() for part in message.splitlines() if part.strip())
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(f"[{timestamp}] {digest} {flat}\n")
            self._last_digest = digest
            return True
        except Exception:
            logger.exception("Change log write failed (snapshot is unaffected)")
            return False

    def entries(self, limit: Optional[int] = None) -> List[ChangeEntry]:
        """Recorded entries, newest first. Unparseable lines are skipped."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            return []
        except OSError:
            logger.exception("Change log unreadable: %s", self.path)
            return []

        result = []
        for line in reversed(lines):
            match = _ENTRY_RE.match(line)
            if match:
                result.append(ChangeEntry(**match.groupdict()))
            if limit is not None and len(result) >= limit:
                break
        return result

    def _last_recorded_digest(self) -> Optional[str]:
        if self._last_digest is None:
            latest = self.entries(limit=1)
            if latest:
                self._last_digest = latest[0].digest
        return self._last_digest
