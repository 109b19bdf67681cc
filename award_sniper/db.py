from __future__ import annotations

import json
import logging
import os
import pathlib
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .models import Alert, CronJob, Preferences


PACKAGE_DIR = pathlib.Path(__file__).resolve().parent
DB_FILE = os.getenv("SNIPER_DB", "award_sniper.db")
SCHEMA_FILE = str(PACKAGE_DIR / "schema.sql")
SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """The sqlite store could not be read or written."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@contextmanager
def _connect(db_path: str) -> Iterator[sqlite3.Connection]:
    try:
        conn = sqlite3.connect(db_path)
    except sqlite3.Error as exc:
        raise StoreError(f"cannot open {db_path}: {exc}") from exc
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise StoreError(str(exc)) from exc
    finally:
        conn.close()


def migrate(db_path: str = DB_FILE, schema_path: str = SCHEMA_FILE) -> None:
    """Bring *db_path* up to ``SCHEMA_VERSION``."""
    with _connect(db_path) as conn:
        conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
        current = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0] or 0
        if current >= SCHEMA_VERSION:
            return
        logger.info("Migrating %s from schema %s to %s", db_path, current, SCHEMA_VERSION)
        conn.executescript(pathlib.Path(schema_path).read_text(encoding="utf-8"))
        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version(version) VALUES (?)", (SCHEMA_VERSION,))


# ────────────────────────────────────────────────────────────────
# Alerts
# ────────────────────────────────────────────────────────────────


def _alert_from_row(row) -> Alert:
    return Alert(
        id=row[0],
        requester=row[1],
        search=row[2],
        cron=row[3],
        chat_id=row[4],
        previous_result=row[5],
        updated_at=_parse_ts(row[6]),
    )


_ALERT_COLUMNS = "id, requester, search, cron, chat_id, previous_result, updated_at"


def insert_alert(alert: Alert, db_path: str = DB_FILE) -> int:
    """Insert *alert* (or replace the existing one) and return its row id."""
    logger.info("Inserting alert %s for %s", alert.search, alert.requester)
    with _connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO alerts (requester, search, cron, chat_id, previous_result, updated_at)
            VALUES (?,?,?,?,?,?)
            ON CONFLICT(requester, search)
            DO UPDATE SET cron=excluded.cron, chat_id=excluded.chat_id,
                          previous_result=excluded.previous_result,
                          updated_at=excluded.updated_at
            """,
            (
                alert.requester,
                alert.search,
                alert.cron,
                alert.chat_id,
                alert.previous_result,
                alert.updated_at.isoformat() if alert.updated_at else None,
            ),
        )
        row = conn.execute(
            "SELECT id FROM alerts WHERE requester=? AND search=?",
            (alert.requester, alert.search),
        ).fetchone()
    return int(row[0])


def find_alert(alert_id: int, db_path: str = DB_FILE) -> Optional[Alert]:
    with _connect(db_path) as conn:
        row = conn.execute(
            f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE id=?", (alert_id,)
        ).fetchone()
    return _alert_from_row(row) if row else None


def find_alerts(requester: Optional[str] = None, db_path: str = DB_FILE) -> List[Alert]:
    """Return all alerts, or only the ones of *requester*."""
    with _connect(db_path) as conn:
        if requester is None:
            rows = conn.execute(f"SELECT {_ALERT_COLUMNS} FROM alerts ORDER BY id").fetchall()
        else:
            rows = conn.execute(
                f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE requester=? ORDER BY id",
                (requester,),
            ).fetchall()
    return [_alert_from_row(r) for r in rows]


def update_alert_result(alert_id: int, result: Optional[str], db_path: str = DB_FILE) -> None:
    """Store the latest rendered result of an alert."""
    logger.info("Updating result of alert %s", alert_id)
    with _connect(db_path) as conn:
        conn.execute(
            "UPDATE alerts SET previous_result=?, updated_at=? WHERE id=?",
            (result, _now(), alert_id),
        )


def delete_alert(requester: str, search: str, db_path: str = DB_FILE) -> List[int]:
    """Delete the alert of *requester* for *search*; return the removed ids."""
    with _connect(db_path) as conn:
        ids = [
            r[0]
            for r in conn.execute(
                "SELECT id FROM alerts WHERE requester=? AND search=?",
                (requester, search),
            ).fetchall()
        ]
        conn.execute(
            "DELETE FROM alerts WHERE requester=? AND search=?", (requester, search)
        )
    return ids


# ────────────────────────────────────────────────────────────────
# Cron jobs
# ────────────────────────────────────────────────────────────────


def _cron_from_row(row) -> CronJob:
    return CronJob(
        id=row[0],
        requester=row[1],
        search=row[2],
        cron=row[3],
        chat_id=row[4],
        updated_at=_parse_ts(row[5]),
    )


def insert_cron_job(job: CronJob, db_path: str = DB_FILE) -> int:
    logger.info("Inserting cron job %s for %s", job.search, job.requester)
    with _connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO cron_jobs (requester, search, cron, chat_id, updated_at)
            VALUES (?,?,?,?,?)
            ON CONFLICT(requester, search)
            DO UPDATE SET cron=excluded.cron, chat_id=excluded.chat_id
            """,
            (job.requester, job.search, job.cron, job.chat_id, _now()),
        )
        row = conn.execute(
            "SELECT id FROM cron_jobs WHERE requester=? AND search=?",
            (job.requester, job.search),
        ).fetchone()
    return int(row[0])


def find_cron_jobs(requester: Optional[str] = None, db_path: str = DB_FILE) -> List[CronJob]:
    cols = "id, requester, search, cron, chat_id, updated_at"
    with _connect(db_path) as conn:
        if requester is None:
            rows = conn.execute(f"SELECT {cols} FROM cron_jobs ORDER BY id").fetchall()
        else:
            rows = conn.execute(
                f"SELECT {cols} FROM cron_jobs WHERE requester=? ORDER BY id",
                (requester,),
            ).fetchall()
    return [_cron_from_row(r) for r in rows]


def touch_cron_job(job_id: int, db_path: str = DB_FILE) -> None:
    with _connect(db_path) as conn:
        conn.execute("UPDATE cron_jobs SET updated_at=? WHERE id=?", (_now(), job_id))


def delete_cron_job(requester: str, search: str, db_path: str = DB_FILE) -> List[int]:
    with _connect(db_path) as conn:
        ids = [
            r[0]
            for r in conn.execute(
                "SELECT id FROM cron_jobs WHERE requester=? AND search=?",
                (requester, search),
            ).fetchall()
        ]
        conn.execute(
            "DELETE FROM cron_jobs WHERE requester=? AND search=?", (requester, search)
        )
    return ids


# ────────────────────────────────────────────────────────────────
# Preferences
# ────────────────────────────────────────────────────────────────


def get_preferences(requester: Optional[str], db_path: str = DB_FILE) -> Preferences:
    """Return the stored preferences of *requester* or the defaults."""
    if not requester:
        return Preferences()
    with _connect(db_path) as conn:
        row = conn.execute(
            "SELECT data FROM preferences WHERE requester=?", (requester,)
        ).fetchone()
    if not row:
        return Preferences()
    return Preferences.from_dict(json.loads(row[0]))


def save_preferences(requester: str, prefs: Preferences, db_path: str = DB_FILE) -> None:
    logger.info("Saving preferences for %s", requester)
    with _connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO preferences (requester, data, updated_at) VALUES (?,?,?)
            ON CONFLICT(requester) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at
            """,
            (requester, json.dumps(prefs.to_dict()), _now()),
        )


def reset_user(requester: str, db_path: str = DB_FILE) -> None:
    """Drop preferences, alerts and cron jobs of *requester*."""
    logger.info("Resetting all state of %s", requester)
    with _connect(db_path) as conn:
        conn.execute("DELETE FROM preferences WHERE requester=?", (requester,))
        conn.execute("DELETE FROM alerts WHERE requester=?", (requester,))
        conn.execute("DELETE FROM cron_jobs WHERE requester=?", (requester,))


# ────────────────────────────────────────────────────────────────
# Search history
# ────────────────────────────────────────────────────────────────


def insert_search(
    requester: Optional[str],
    origin: str,
    destination: str,
    year: int,
    month: int,
    price: Optional[int],
    source: str = "telegram",
    db_path: str = DB_FILE,
) -> int:
    """Record one answered search and return its row id."""
    with _connect(db_path) as conn:
        cur = conn.execute(
            """
            INSERT INTO flight_searches
                (requester, source, searched_at, origin, destination, year, month, price)
            VALUES (?,?,?,?,?,?,?,?)
            """,
            (requester, source, _now(), origin, destination, year, month, price),
        )
        return int(cur.lastrowid)


__all__ = [
    "DB_FILE",
    "StoreError",
    "migrate",
    "insert_alert",
    "find_alert",
    "find_alerts",
    "update_alert_result",
    "delete_alert",
    "insert_cron_job",
    "find_cron_jobs",
    "touch_cron_job",
    "delete_cron_job",
    "get_preferences",
    "save_preferences",
    "reset_user",
    "insert_search",
]
