# shiftreport/gateway/sqlite.py
import json
import logging
import os
import random
import sqlite3
import string
import time
from contextlib import contextmanager
from typing import List, Optional

from shiftreport.database import DatabaseManager
from shiftreport.errors import BackendError, PhotoNotFound, ReportNotFound
from shiftreport.gateway.base import ReportGateway
from shiftreport.models import ActivityLog, PhotoFile, Report, ReportSearchFilters, User
from shiftreport.utils import iso

logger = logging.getLogger(__name__)


class PhotoBucket:
    """
    Directory-backed object storage. Objects live under
    <root>/<bucket>/reports/<stamp>_<rand>.<ext> and are addressed by public URL.
    """

    def __init__(self, root_dir: str, bucket: str, public_url: str):
        self.root_dir = os.path.abspath(root_dir)
        self.bucket = bucket
        self.public_url = (public_url or '').rstrip('/')

    @property
    def bucket_dir(self) -> str:
        return os.path.join(self.root_dir, self.bucket)

    def _new_object_name(self, extension: str) -> str:
        stamp = int(time.time() * 1000)
        rand = ''.join(random.choices(string.ascii_lowercase + string.digits, k=7))
        return f"reports/{stamp}_{rand}.{extension}"

    def put(self, data: bytes, extension: str) -> str:
        name = self._new_object_name(extension)
        path = os.path.join(self.bucket_dir, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(data)
        return f"{self.public_url}/{self.bucket}/{name}"

    def local_path(self, object_path: str) -> Optional[str]:
        """Map '<bucket>/reports/x.jpg' to a file inside the bucket, or None if it escapes it."""
        path = os.path.abspath(os.path.join(self.root_dir, object_path))
        if not path.startswith(self.bucket_dir + os.sep):
            return None
        return path

    def _path_for(self, url: str) -> Optional[str]:
        prefix = f"{self.public_url}/"
        if not (url or '').startswith(prefix):
            return None
        path = self.local_path(url[len(prefix):])
        if path is None or not os.path.isfile(path):
            return None
        return path

    def exists(self, url: str) -> bool:
        return self._path_for(url) is not None

    def get(self, url: str) -> bytes:
        path = self._path_for(url)
        if path is None:
            raise PhotoNotFound(url)
        with open(path, 'rb') as f:
            return f.read()


class SqliteReportGateway(ReportGateway):
    name = 'sqlite'

    def __init__(self, config, db_manager: Optional[DatabaseManager] = None, bucket: Optional[PhotoBucket] = None,
                 clock=None):
        super().__init__(config, clock=clock)
        self.db_manager = db_manager or DatabaseManager(config.DATABASE)
        self.bucket = bucket or PhotoBucket(config.STORAGE_DIR, config.PHOTO_BUCKET, config.PUBLIC_STORAGE_URL)

    @contextmanager
    def _db(self, action: str):
        """Connection for one unit of work; sqlite failures surface as BackendError."""
        try:
            with self.db_manager.db_connection() as db:
                yield db
        except sqlite3.Error as e:
            logger.exception("sqlite error while trying to %s", action)
            raise BackendError(f"データベースの処理に失敗しました ({action}): {e}") from e

    def initialize(self) -> bool:
        try:
            self.db_manager.init_db()
        except sqlite3.Error as e:
            raise BackendError(f"データベースを初期化できませんでした: {e}") from e
        return False

    def close(self):
        self.db_manager.close_db()

    # ---------- photos ----------

    def _store_photo(self, photo: PhotoFile) -> str:
        try:
            return self.bucket.put(photo.data, photo.extension)
        except OSError as e:
            logger.exception("Photo upload failed")
            raise BackendError(f"写真のアップロードに失敗しました: {e}") from e

    def resolve_photo(self, reference: str) -> bytes:
        return self.bucket.get(reference)

    def owns_reference(self, reference: str) -> bool:
        return self.bucket.exists(reference)

    # ---------- reports ----------

    def _report_row(self, report: Report):
        d = report.model_dump()
        d['photo_urls'] = json.dumps(d['photo_urls'], ensure_ascii=False)
        for flag in ('traffic_guide_assigned', 'misc_guard_assigned'):
            d[flag] = 1 if d[flag] else 0
        for key in ('work_date_from', 'work_date_to', 'created_at', 'updated_at'):
            d[key] = iso(d[key])
        return d

    def _write_activity(self, db, entry: ActivityLog):
        db.execute(
            'INSERT INTO activity_logs (id, user_id, action, resource_type, resource_id, created_at) '
            'VALUES (?, ?, ?, ?, ?, ?)',
            (entry.id, entry.user_id, entry.action, entry.resource_type, entry.resource_id,
             iso(entry.created_at)),
        )

    def _insert_report(self, report: Report, entry: Optional[ActivityLog] = None):
        d = self._report_row(report)
        cols = list(d.keys())
        sql = f"INSERT INTO reports ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})"
        # report row and its audit row commit together or not at all
        with self._db('save report') as db:
            db.execute(sql, [d[c] for c in cols])
            if entry is not None:
                self._write_activity(db, entry)
            db.commit()

    def get_report(self, report_id: str) -> Report:
        with self._db('read report') as db:
            row = db.execute('SELECT * FROM reports WHERE id = ?', (report_id,)).fetchone()
        if row is None:
            raise ReportNotFound(report_id)
        return self.db_manager.map_db_row_to_report(row)

    def _query_reports(self, filters: ReportSearchFilters) -> List[Report]:
        clauses, params = [], []
        if filters.start_date is not None:
            clauses.append('work_date_from >= ?')
            params.append(iso(filters.start_date))
        if filters.end_date is not None:
            clauses.append('work_date_to <= ?')
            params.append(iso(filters.end_date))
        if filters.owner_id:
            clauses.append('user_id = ?')
            params.append(filters.owner_id)
        if filters.contract_name:
            clauses.append('instr(py_lower(contract_name), py_lower(?)) > 0')
            params.append(filters.contract_name)

        sql = 'SELECT * FROM reports'
        if clauses:
            sql += ' WHERE ' + ' AND '.join(clauses)
        sql += ' ORDER BY created_at DESC, seq DESC'

        with self._db('list reports') as db:
            rows = db.execute(sql, params).fetchall()
        return [self.db_manager.map_db_row_to_report(r) for r in rows]

    # ---------- audit ----------

    def _insert_activity(self, entry: ActivityLog):
        with self._db('record activity') as db:
            self._write_activity(db, entry)
            db.commit()

    def list_activity(self, user_id: Optional[str] = None) -> List[ActivityLog]:
        sql = 'SELECT * FROM activity_logs'
        params = []
        if user_id:
            sql += ' WHERE user_id = ?'
            params.append(user_id)
        sql += ' ORDER BY seq'
        with self._db('list activity') as db:
            rows = db.execute(sql, params).fetchall()
        return [self.db_manager.map_db_row_to_activity(r) for r in rows]

    # ---------- accounts ----------

    def _insert_user(self, user: User):
        with self._db('save user') as db:
            db.execute(
                'INSERT INTO user_profiles (id, email, full_name, role, created_at) VALUES (?, ?, ?, ?, ?)',
                (user.id, user.email, user.full_name, user.role, iso(user.created_at)),
            )
            db.commit()

    def _find_user_by_email(self, email: str) -> Optional[User]:
        with self._db('find user') as db:
            row = db.execute('SELECT * FROM user_profiles WHERE email = ?', (email,)).fetchone()
        return self.db_manager.map_db_row_to_user(row) if row else None

    def get_user(self, user_id: str) -> Optional[User]:
        with self._db('read user') as db:
            row = db.execute('SELECT * FROM user_profiles WHERE id = ?', (user_id,)).fetchone()
        return self.db_manager.map_db_row_to_user(row) if row else None
