import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime

from shiftreport.models import ActivityLog, Report, User

logger = logging.getLogger(__name__)


def _casefold(value):
    if value is None:
        return None
    return str(value).lower()


class DatabaseManager:
    def __init__(self, db_path):
        self.db_path = db_path or 'reports.db'
        self._conn = None

    def get_db(self):
        if self._conn is None:
            db_path = os.path.normpath(self.db_path)
            if db_path != ':memory:' and not os.path.isabs(db_path):
                db_path = os.path.abspath(db_path)

            # sqlite does not create parent directories
            db_dir = os.path.dirname(db_path)
            if db_path != ':memory:' and db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir, exist_ok=True)

            logger.info("Opening DB at %s (exists=%s)", db_path, os.path.exists(db_path))

            conn = sqlite3.connect(db_path, check_same_thread=False, timeout=30)
            conn.row_factory = sqlite3.Row
            try:
                conn.execute('PRAGMA journal_mode = WAL')
                conn.execute('PRAGMA synchronous = NORMAL')
            except sqlite3.Error:
                # some filesystems refuse WAL; the defaults still work
                logger.warning("Could not enable WAL for %s", db_path)
            conn.execute('PRAGMA foreign_keys = ON')
            # sqlite's lower() only folds ASCII
            conn.create_function('py_lower', 1, _casefold)
            self._conn = conn
        return self._conn

    @contextmanager
    def db_connection(self):
        db = self.get_db()
        try:
            yield db
        except sqlite3.Error:
            db.rollback()
            raise

    def ensure_table_columns(self, db):
        cur = db.execute("PRAGMA table_info(reports)")
        cols = [r['name'] for r in cur.fetchall()]

        # columns added after the first release of the form
        for col in ('weather', 'break_time', 'overtime_time', 'assigned_guards'):
            if col not in cols:
                db.execute(f"ALTER TABLE reports ADD COLUMN {col} TEXT DEFAULT ''")

        if 'updated_at' not in cols:
            db.execute("ALTER TABLE reports ADD COLUMN updated_at TEXT")
            db.execute("UPDATE reports SET updated_at = created_at WHERE updated_at IS NULL")

    def init_db(self):
        with self.db_connection() as db:
            db.execute('''
                CREATE TABLE IF NOT EXISTS user_profiles (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    full_name TEXT DEFAULT '',
                    role TEXT NOT NULL DEFAULT 'employee',
                    created_at TEXT NOT NULL
                )
            ''')
            db.execute('''
                CREATE TABLE IF NOT EXISTS reports (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    contract_name TEXT NOT NULL,
                    guard_location TEXT NOT NULL,
                    work_type TEXT NOT NULL,
                    work_detail TEXT DEFAULT '',
                    work_date_from TEXT NOT NULL,
                    work_date_to TEXT NOT NULL,
                    photo_urls TEXT DEFAULT '[]',
                    special_notes TEXT DEFAULT '',
                    special_notes_detail TEXT DEFAULT '',
                    traffic_guide_assigned INTEGER NOT NULL DEFAULT 0,
                    traffic_guide_assignee_name TEXT DEFAULT '',
                    misc_guard_assigned INTEGER NOT NULL DEFAULT 0,
                    misc_guard_assignee_name TEXT DEFAULT '',
                    remarks TEXT DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'submitted',
                    created_at TEXT NOT NULL
                )
            ''')
            db.execute('''
                CREATE TABLE IF NOT EXISTS activity_logs (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    resource_type TEXT,
                    resource_id TEXT,
                    created_at TEXT NOT NULL
                )
            ''')
            db.commit()
            self.ensure_table_columns(db)
            db.execute('CREATE INDEX IF NOT EXISTS idx_reports_user ON reports (user_id)')
            db.execute('CREATE INDEX IF NOT EXISTS idx_reports_created ON reports (created_at)')
            db.commit()

    def close_db(self):
        if self._conn is not None:
            conn, self._conn = self._conn, None
            conn.close()

    def map_db_row_to_report(self, row) -> Report:
        d = dict(row)
        d.pop('seq', None)

        raw_urls = d.get('photo_urls')
        if isinstance(raw_urls, (bytes, bytearray)):
            raw_urls = raw_urls.decode('utf-8')
        try:
            d['photo_urls'] = json.loads(raw_urls) if raw_urls else []
        except ValueError:
            logger.warning("Report %s has unreadable photo_urls; ignoring", d.get('id'))
            d['photo_urls'] = []

        for flag in ('traffic_guide_assigned', 'misc_guard_assigned'):
            d[flag] = bool(d.get(flag))
        for key in ('work_date_from', 'work_date_to', 'created_at', 'updated_at'):
            if d.get(key):
                d[key] = datetime.fromisoformat(d[key])
        if not d.get('updated_at'):
            d['updated_at'] = d['created_at']
        for key, value in list(d.items()):
            if value is None:
                d[key] = ''
        return Report.model_validate(d)

    def map_db_row_to_user(self, row) -> User:
        d = dict(row)
        d['created_at'] = datetime.fromisoformat(d['created_at'])
        d['full_name'] = d.get('full_name') or ''
        return User.model_validate(d)

    def map_db_row_to_activity(self, row) -> ActivityLog:
        d = dict(row)
        d.pop('seq', None)
        d['created_at'] = datetime.fromisoformat(d['created_at'])
        return ActivityLog.model_validate(d)
