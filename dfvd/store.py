"""
SQLite-backed report store.

The unique index on report_id is the only arbiter of identifier uniqueness;
save() retries a collided insert with a freshly minted identifier, bounded by
`attempts`. Any other database failure is raised as PersistenceUnavailable.
"""

import datetime
import json
import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional

from .config import SAVE_ATTEMPTS, get_db_path
from .errors import PersistenceConflict, PersistenceUnavailable
from .models import Report, StoredReport
from .utils import mint_identifier

logger = logging.getLogger("dfvd.store")

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS reports (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    report_id TEXT NOT NULL,
    overall_verdict TEXT NOT NULL,
    content_fingerprint TEXT NOT NULL,
    report_json TEXT NOT NULL,
    ip_address TEXT,
    user_agent TEXT,
    created_at TEXT NOT NULL
);
"""

CREATE_INDEX_SQL = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_reports_report_id ON reports(report_id);
CREATE INDEX IF NOT EXISTS idx_reports_created_at ON reports(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_reports_verdict ON reports(overall_verdict);
CREATE INDEX IF NOT EXISTS idx_reports_fingerprint ON reports(content_fingerprint);
"""

_COLUMNS = "report_json, ip_address, user_agent, created_at"


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _is_report_id_collision(e: sqlite3.IntegrityError) -> bool:
    msg = str(e)
    return "UNIQUE" in msg and "report_id" in msg


class ReportStore:
    def __init__(
        self,
        db_path: Optional[str] = None,
        attempts: int = SAVE_ATTEMPTS,
        mint: Callable[[], str] = mint_identifier,
        clock: Callable[[], datetime.datetime] = _utc_now,
    ):
        self.db_path = db_path or get_db_path()
        self.attempts = attempts
        self._mint = mint
        self._clock = clock
        self._initialized = False

    def connect(self) -> sqlite3.Connection:
        try:
            con = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise PersistenceUnavailable(f"Cannot open report database {self.db_path}: {e}") from e
        con.row_factory = sqlite3.Row
        return con

    def init_db(self) -> None:
        if self._initialized:
            return
        con = self.connect()
        try:
            con.executescript(CREATE_TABLE_SQL)
            con.executescript(CREATE_INDEX_SQL)
            con.commit()
        except sqlite3.Error as e:
            raise PersistenceUnavailable(f"Cannot initialise report database: {e}") from e
        finally:
            con.close()
        self._initialized = True
        logger.info(f"Report DB initialized: {self.db_path}")

    def ping(self) -> bool:
        try:
            self.init_db()
            con = self.connect()
            try:
                con.execute("SELECT 1").fetchone()
            finally:
                con.close()
        except (PersistenceUnavailable, sqlite3.Error) as e:
            logger.warning(f"Report DB unreachable: {e}")
            return False
        return True

    # -----------------------------
    # Writes
    # -----------------------------
    def _insert(self, report: Report, ip_address: Optional[str], user_agent: Optional[str], created_at: str) -> None:
        con = self.connect()
        try:
            con.execute(
                "INSERT INTO reports (report_id, overall_verdict, content_fingerprint, report_json, ip_address, user_agent, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    report.report_id,
                    report.overall_verdict,
                    report.file_metadata.content_fingerprint,
                    json.dumps(report.to_payload(), ensure_ascii=False),
                    ip_address,
                    user_agent,
                    created_at,
                ),
            )
            con.commit()
        finally:
            con.close()

    def _fresh_identifier(self, attempted: List[str]) -> str:
        new_id = self._mint()
        while new_id in attempted:
            new_id = self._mint()
        return new_id

    def save(
        self,
        report: Report,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> StoredReport:
        """
        Insert the report exactly once.

        On a report_id collision the report is rebuilt with a new identifier
        and the insert is retried, up to `attempts` inserts in total.
        """
        self.init_db()
        attempted: List[str] = []

        for attempt in range(1, self.attempts + 1):
            if attempt > 1:
                report = report.with_identifier(self._fresh_identifier(attempted))
                logger.warning(f"Retry {attempt - 1}: using new reportId {report.report_id}")
            attempted.append(report.report_id)

            created_at = self._clock()
            try:
                self._insert(report, ip_address, user_agent, created_at.isoformat(timespec="microseconds"))
            except sqlite3.IntegrityError as e:
                if _is_report_id_collision(e):
                    logger.warning(f"reportId {report.report_id} already stored (attempt {attempt}/{self.attempts})")
                    continue
                raise PersistenceUnavailable(f"Report insert rejected: {e}") from e
            except sqlite3.Error as e:
                raise PersistenceUnavailable(f"Report insert failed: {e}") from e

            logger.info(f"Analysis log saved with reportId: {report.report_id}")
            return StoredReport.model_validate({
                **report.model_dump(),
                "created_at": created_at,
                "ip_address": ip_address,
                "user_agent": user_agent,
            })

        raise PersistenceConflict(attempted)

    # -----------------------------
    # Reads
    # -----------------------------
    def _query(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        self.init_db()
        con = self.connect()
        try:
            return con.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceUnavailable(f"Report query failed: {e}") from e
        finally:
            con.close()

    def find_by_id(self, report_id: str) -> Optional[StoredReport]:
        rows = self._query(f"SELECT {_COLUMNS} FROM reports WHERE report_id = ?", (report_id,))
        return _row_to_report(rows[0]) if rows else None

    def count(self, verdict: Optional[str] = None) -> int:
        where, params = _verdict_filter(verdict)
        rows = self._query(f"SELECT COUNT(*) FROM reports{where}", params)
        return rows[0][0]

    def find_page(self, verdict: Optional[str] = None, skip: int = 0, limit: int = 10) -> List[StoredReport]:
        """Newest first; reports created at the same instant keep their insertion order."""
        where, params = _verdict_filter(verdict)
        rows = self._query(
            f"SELECT {_COLUMNS} FROM reports{where} ORDER BY created_at DESC, id ASC LIMIT ? OFFSET ?",
            params + (limit, skip),
        )
        return [_row_to_report(r) for r in rows]


def _verdict_filter(verdict: Optional[str]) -> tuple:
    if verdict:
        return " WHERE overall_verdict = ?", (verdict,)
    return "", ()


def _row_to_report(row: sqlite3.Row) -> StoredReport:
    d: Dict[str, Any] = json.loads(row["report_json"])
    d["createdAt"] = row["created_at"]
    d["ipAddress"] = row["ip_address"]
    d["userAgent"] = row["user_agent"]
    return StoredReport.model_validate(d)


_store: Optional[ReportStore] = None


def get_report_store() -> ReportStore:
    global _store
    if _store is None:
        _store = ReportStore()
    return _store
