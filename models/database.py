"""SQLite database for alert rules, alert history, processed log entries and settings."""
import sqlite3
import logging
import threading
from datetime import datetime, timezone, timedelta
from pathlib import Path
from models.alerts import AlertRule, Alert
from utils.errors import StoreUnavailable, NotFound

logger = logging.getLogger("hostwatch.db")


def _ts(dt):
    """Fixed-width UTC timestamp so text comparison in SQL orders correctly."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Database:
    def __init__(self, db_path="data/hostwatch.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _require(self):
        if self.conn is None:
            raise StoreUnavailable("database not initialized")
        return self.conn

    def _execute(self, query, params=()):
        conn = self._require()
        with self._lock:
            cur = conn.execute(query, params)
            conn.commit()
            return cur

    def _fetchall(self, query, params=()):
        conn = self._require()
        with self._lock:
            return conn.execute(query, params).fetchall()

    def _fetchone(self, query, params=()):
        conn = self._require()
        with self._lock:
            return conn.execute(query, params).fetchone()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alert_rules (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                type TEXT NOT NULL,
                condition TEXT,
                threshold REAL DEFAULT 0,
                severity TEXT DEFAULT 'medium',
                enabled INTEGER DEFAULT 1,
                email_enabled INTEGER DEFAULT 0,
                log_pattern TEXT,
                app_filter TEXT,
                log_filter TEXT,
                created_at TEXT,
                updated_at TEXT,
                last_triggered TEXT
            );

            CREATE TABLE IF NOT EXISTS alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rule_id TEXT,
                timestamp TEXT NOT NULL,
                type TEXT,
                severity TEXT DEFAULT 'medium',
                message TEXT,
                resolved INTEGER DEFAULT 0,
                resolved_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_timestamp
                ON alerts(timestamp);

            CREATE TABLE IF NOT EXISTS processed_log_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entry_hash TEXT UNIQUE,
                processed_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_processed_entries_time
                ON processed_log_entries(processed_at);

            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT
            );
        """)
        self.conn.commit()

    # --- Alert Rules ---

    def get_alert_rules(self):
        rows = self._fetchall("SELECT * FROM alert_rules ORDER BY created_at DESC")
        return [AlertRule.from_row(r) for r in rows]

    def get_alert_rule(self, rule_id):
        row = self._fetchone("SELECT * FROM alert_rules WHERE id = ?", (rule_id,))
        if row is None:
            raise NotFound(f"Rule not found: {rule_id}")
        return AlertRule.from_row(row)

    def create_alert_rule(self, rule: AlertRule):
        self._execute("""
            INSERT INTO alert_rules
            (id, name, description, type, condition, threshold, severity, enabled,
             email_enabled, log_pattern, app_filter, log_filter, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            rule.id, rule.name, rule.description, rule.type, rule.condition,
            rule.threshold, rule.severity, int(rule.enabled), int(rule.email_enabled),
            rule.log_pattern, rule.app_filter, rule.log_filter,
            _ts(rule.created_at), _ts(rule.updated_at),
        ))
        logger.debug(f"Created rule {rule.id} ({rule.name})")

    def update_alert_rule(self, rule: AlertRule):
        cur = self._execute("""
            UPDATE alert_rules SET name=?, description=?, type=?, condition=?, threshold=?,
                severity=?, enabled=?, email_enabled=?, log_pattern=?, app_filter=?,
                log_filter=?, updated_at=?
            WHERE id=?
        """, (
            rule.name, rule.description, rule.type, rule.condition, rule.threshold,
            rule.severity, int(rule.enabled), int(rule.email_enabled), rule.log_pattern,
            rule.app_filter, rule.log_filter, _ts(rule.updated_at), rule.id,
        ))
        if cur.rowcount == 0:
            raise NotFound(f"Rule not found: {rule.id}")

    def delete_alert_rule(self, rule_id):
        cur = self._execute("DELETE FROM alert_rules WHERE id=?", (rule_id,))
        if cur.rowcount == 0:
            raise NotFound(f"Rule not found: {rule_id}")

    def update_rule_last_triggered(self, rule_id, timestamp):
        self._execute(
            "UPDATE alert_rules SET last_triggered=? WHERE id=?", (_ts(timestamp), rule_id)
        )

    def count_alert_rules(self):
        row = self._fetchone("SELECT COUNT(*) AS cnt FROM alert_rules")
        return row["cnt"]

    # --- Alert History ---

    def save_alert(self, alert: Alert):
        cur = self._execute("""
            INSERT INTO alerts (rule_id, timestamp, type, severity, message, resolved)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            alert.rule_id, _ts(alert.timestamp), alert.type, alert.severity,
            alert.message, int(alert.resolved),
        ))
        alert.id = cur.lastrowid
        return alert.id

    def get_alert_history(self, limit=100):
        rows = self._fetchall(
            "SELECT * FROM alerts ORDER BY timestamp DESC LIMIT ?", (limit,)
        )
        return [Alert.from_row(r) for r in rows]

    def get_alert(self, alert_id):
        row = self._fetchone("SELECT * FROM alerts WHERE id = ?", (alert_id,))
        if row is None:
            raise NotFound(f"Alert not found: {alert_id}")
        return Alert.from_row(row)

    def resolve_alert(self, alert_id):
        now = datetime.now(timezone.utc)
        cur = self._execute(
            "UPDATE alerts SET resolved = 1, resolved_at = ? WHERE id = ?", (_ts(now), alert_id)
        )
        if cur.rowcount == 0:
            raise NotFound(f"Alert not found: {alert_id}")
        return now

    def get_alert_stats(self, days=30):
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        rows = self._fetchall("""
            SELECT severity, COUNT(*) as count
            FROM alerts
            WHERE timestamp >= ?
            GROUP BY severity
        """, (_ts(cutoff),))
        return {r["severity"]: r["count"] for r in rows}

    # --- Processed Log Entries ---

    def is_entry_processed(self, entry_hash):
        row = self._fetchone(
            "SELECT 1 FROM processed_log_entries WHERE entry_hash = ? LIMIT 1", (entry_hash,)
        )
        return row is not None

    def mark_entry_processed(self, entry_hash, processed_at=None):
        processed_at = processed_at or datetime.now(timezone.utc)
        self._execute(
            "INSERT OR IGNORE INTO processed_log_entries (entry_hash, processed_at) VALUES (?, ?)",
            (entry_hash, _ts(processed_at)),
        )

    def cleanup_processed_entries(self, max_age_hours=24):
        cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
        cur = self._execute(
            "DELETE FROM processed_log_entries WHERE processed_at < ?", (_ts(cutoff),)
        )
        return cur.rowcount

    def count_processed_entries(self):
        row = self._fetchone("SELECT COUNT(*) AS cnt FROM processed_log_entries")
        return row["cnt"]

    # --- Settings ---

    def get_settings(self):
        rows = self._fetchall("SELECT key, value FROM app_settings ORDER BY key")
        return {r["key"]: r["value"] for r in rows}

    def save_settings(self, settings: dict):
        now = _ts(datetime.now(timezone.utc))
        conn = self._require()
        with self._lock:
            conn.executemany(
                "INSERT OR REPLACE INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)",
                [(str(k), None if v is None else str(v), now) for k, v in settings.items()],
            )
            conn.commit()
