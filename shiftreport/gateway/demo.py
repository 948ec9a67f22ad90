# shiftreport/gateway/demo.py
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from shiftreport.demo_store import (
    ACTIVITY_KEY, PHOTO_REF_PREFIX, REPORTS_KEY, USERS_KEY, DemoStore, JsonFileStorage, MemoryStorage,
    from_data_url, to_data_url,
)
from shiftreport.errors import BackendError, PhotoNotFound, ReportNotFound
from shiftreport.gateway.base import ReportGateway, new_id
from shiftreport.models import WORK_TYPES, ActivityLog, PhotoFile, Report, ReportSearchFilters, Session, User
from shiftreport.validation import validate_report

logger = logging.getLogger(__name__)

DEMO_ADMIN = {'email': 'admin@celutrust.co.jp', 'full_name': '管理者', 'role': 'admin'}
DEMO_EMPLOYEE = {'email': 'yamada@example.com', 'full_name': '山田 太郎', 'role': 'employee'}


def _sample_reports(today: datetime):
    day = today.replace(hour=8, minute=0, second=0, microsecond=0)
    return [
        {
            'contract_name': '明石市道路整備課',
            'guard_location': '兵庫県明石市大久保町 市道123号線',
            'work_type': WORK_TYPES['ROAD_TRAFFIC'],
            'work_detail': '片側交互通行の誘導',
            'work_date_from': day - timedelta(days=1),
            'work_date_to': day - timedelta(days=1) + timedelta(hours=9),
            'weather': '晴れ',
            'break_time': '60分',
            'overtime_time': '0分',
            'assigned_guards': '山田 太郎\n佐藤 花子',
            'special_notes': 'no',
            'traffic_guide_assigned': True,
            'traffic_guide_assignee_name': '山田 太郎',
        },
        {
            'contract_name': '株式会社明石イベント企画',
            'guard_location': '明石公園 東口駐車場',
            'work_type': WORK_TYPES['EVENT_TRAFFIC'],
            'work_date_from': day,
            'work_date_to': day + timedelta(hours=10),
            'weather': '曇り',
            'break_time': '45分',
            'assigned_guards': '山田 太郎',
            'special_notes': 'yes',
            'special_notes_detail': '来場者多数のため誘導員を1名増員',
            'remarks': '終了後に現場責任者へ報告済み',
        },
    ]


class DemoReportGateway(ReportGateway):
    """Gateway over the local demo collections."""

    name = 'demo'

    def __init__(self, config, store: Optional[DemoStore] = None, clock=None):
        super().__init__(config, clock=clock)
        if store is None:
            path = getattr(config, 'DEMO_STORE_PATH', '')
            store = DemoStore(JsonFileStorage(path) if path else MemoryStorage())
        self.store = store

    def initialize(self) -> bool:
        if not getattr(self.config, 'SEED_DEMO_DATA', True) or not self.store.is_fresh():
            return False

        now = self.now()
        admin = User(id=new_id(), created_at=now, **DEMO_ADMIN)
        employee = User(id=new_id(), created_at=now, **DEMO_EMPLOYEE)
        self._insert_user(admin)
        self._insert_user(employee)

        samples = _sample_reports(now)
        for i, sample in enumerate(samples):
            payload = validate_report(sample, self.tz_name)
            stamp = now - timedelta(hours=len(samples) - i)
            report = Report(
                id=new_id(), user_id=employee.id, status='submitted', photo_urls=[],
                created_at=stamp, updated_at=stamp, **payload.model_dump(),
            )
            self._insert_report(report)

        logger.info("Seeded demo store: admin %s, employee %s, %d reports",
                    admin.email, employee.email, len(samples))
        return True

    # ---------- photos ----------

    def _store_photo(self, photo: PhotoFile) -> str:
        photo_id = uuid.uuid4().hex
        self.store.put_photo(photo_id, {
            'data_url': to_data_url(photo.data, photo.content_type),
            'filename': photo.filename,
            'created_at': self.now().isoformat(),
        })
        return f"{PHOTO_REF_PREFIX}{photo_id}"

    def resolve_photo(self, reference: str) -> bytes:
        if not (reference or '').startswith(PHOTO_REF_PREFIX):
            raise PhotoNotFound(reference)
        entry = self.store.photos().get(reference[len(PHOTO_REF_PREFIX):])
        if not entry:
            raise PhotoNotFound(reference)
        return from_data_url(entry['data_url'])

    def photo_entry(self, photo_id: str) -> dict:
        entry = self.store.photos().get(photo_id)
        if not entry:
            raise PhotoNotFound(f"{PHOTO_REF_PREFIX}{photo_id}")
        return entry

    # ---------- reports ----------

    def _insert_report(self, report: Report, entry: Optional[ActivityLog] = None):
        writes = [(REPORTS_KEY, report.model_dump(mode='json'))]
        if entry is not None:
            writes.append((ACTIVITY_KEY, entry.model_dump(mode='json')))
        try:
            self.store.append_all(writes)
        except OSError as e:
            logger.exception("Could not save report %s to the demo store", report.id)
            raise BackendError(f"報告書の保存に失敗しました: {e}") from e

    def owns_reference(self, reference: str) -> bool:
        if not (reference or '').startswith(PHOTO_REF_PREFIX):
            return False
        return reference[len(PHOTO_REF_PREFIX):] in self.store.photos()

    def _all_reports(self) -> List[Report]:
        return [Report.model_validate(r) for r in self.store.reports()]

    def get_report(self, report_id: str) -> Report:
        for r in self.store.reports():
            if r.get('id') == report_id:
                return Report.model_validate(r)
        raise ReportNotFound(report_id)

    def _query_reports(self, filters: ReportSearchFilters) -> List[Report]:
        needle = filters.contract_name.lower() if filters.contract_name else None
        matched = []
        for pos, report in enumerate(self._all_reports()):
            if filters.start_date is not None and report.work_date_from < filters.start_date:
                continue
            if filters.end_date is not None and report.work_date_to > filters.end_date:
                continue
            if filters.owner_id and report.user_id != filters.owner_id:
                continue
            if needle and needle not in report.contract_name.lower():
                continue
            matched.append((report.created_at, pos, report))
        matched.sort(key=lambda t: (t[0], t[1]), reverse=True)
        return [t[2] for t in matched]

    # ---------- audit ----------

    def _insert_activity(self, entry: ActivityLog):
        self.store.append(ACTIVITY_KEY, entry.model_dump(mode='json'))

    def list_activity(self, user_id: Optional[str] = None) -> List[ActivityLog]:
        logs = [ActivityLog.model_validate(e) for e in self.store.activity_logs()]
        if user_id:
            logs = [e for e in logs if e.user_id == user_id]
        return logs

    # ---------- accounts ----------

    def _insert_user(self, user: User):
        self.store.append(USERS_KEY, user.model_dump(mode='json'))

    def _find_user_by_email(self, email: str) -> Optional[User]:
        for u in self.store.users():
            if u.get('email') == email:
                return User.model_validate(u)
        return None

    def get_user(self, user_id: str) -> Optional[User]:
        for u in self.store.users():
            if u.get('id') == user_id:
                return User.model_validate(u)
        return None

    def current_session(self) -> Optional[Session]:
        raw = self.store.session()
        return Session.model_validate(raw) if raw else None

    def _save_session(self, session: Optional[Session]):
        self.store.set_session(session.model_dump(mode='json') if session else None)
