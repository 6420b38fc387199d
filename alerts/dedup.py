"""Fingerprints of log entries that have already been alerted on.

A fingerprint is a truncated SHA-256 of (file, message, unix timestamp).
Truncation can only suppress a re-alert on a hash collision, never create a
false alert, so 16 hex characters are plenty.

Store failures never block alerting: an unavailable store reports every
entry as unprocessed.
"""
import hashlib
import logging
import sqlite3

from utils.errors import StoreUnavailable

logger = logging.getLogger("hostwatch.alerts.dedup")

FINGERPRINT_BYTES = 8


def fingerprint(file, message, unix_timestamp):
    """Deterministic short digest identifying one log line."""
    data = f"{file}:{message}:{int(unix_timestamp)}"
    digest = hashlib.sha256(data.encode("utf-8")).digest()
    return digest[:FINGERPRINT_BYTES].hex()


class ProcessedEntries:
    """Dedup gate over the store's processed_log_entries table."""

    def __init__(self, db):
        self.db = db

    def is_processed(self, entry_hash) -> bool:
        try:
            return self.db.is_entry_processed(entry_hash)
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.warning(f"Dedup lookup failed, treating entry as new: {e}")
            return False

    def mark_processed(self, entry_hash) -> bool:
        try:
            self.db.mark_entry_processed(entry_hash)
            return True
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.warning(f"Failed to mark entry {entry_hash} processed: {e}")
            return False

    def cleanup(self, max_age_hours=24) -> int:
        try:
            removed = self.db.cleanup_processed_entries(max_age_hours)
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.warning(f"Processed entry cleanup failed: {e}")
            return 0
        if removed:
            logger.info(f"Removed {removed} processed entries older than {max_age_hours}h")
        return removed

    def count(self):
        try:
            return self.db.count_processed_entries()
        except (StoreUnavailable, sqlite3.Error) as e:
            logger.warning(f"Could not count processed entries: {e}")
            return None
