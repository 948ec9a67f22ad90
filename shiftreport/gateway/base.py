# shiftreport/gateway/base.py
import abc
import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from shiftreport.errors import AuthError, PhotoNotFound, PhotoUploadError
from shiftreport.models import (
    ActivityLog, PhotoFile, Report, ReportPayload, ReportSearchFilters, Session, User,
)
from shiftreport.utils import now_local

logger = logging.getLogger(__name__)

PHOTO_TOO_LARGE_MESSAGE = 'ファイルサイズは5MB以下にしてください'
PHOTO_BAD_TYPE_MESSAGE = 'JPEG、PNGファイルのみアップロード可能です'


def new_id() -> str:
    return str(uuid.uuid4())


class ReportGateway(abc.ABC):
    """
    Persistence contract shared by the real backend and the demo store.
    Adapters implement the underscore hooks; photo checks and audit entries
    live here so both behave the same.
    """

    name = 'abstract'

    def __init__(self, config, clock: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.tz_name = getattr(config, 'TIMEZONE', 'Asia/Tokyo')
        self.max_photo_bytes = int(getattr(config, 'MAX_PHOTO_BYTES', 5 * 1024 * 1024))
        self.allowed_photo_types = tuple(t.lower() for t in getattr(config, 'ALLOWED_PHOTO_TYPES', ('image/jpeg', 'image/png')))
        self._clock = clock

    def now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return now_local(self.tz_name)

    def initialize(self) -> bool:
        """Prepare the backing store. Returns True when seed data was written."""
        return False

    def close(self):
        pass

    # ---------- photos ----------

    def check_photo(self, photo: PhotoFile):
        if photo.size > self.max_photo_bytes:
            raise PhotoUploadError(PHOTO_TOO_LARGE_MESSAGE)
        if (photo.content_type or '').lower() not in self.allowed_photo_types:
            raise PhotoUploadError(PHOTO_BAD_TYPE_MESSAGE)

    def upload_photo(self, photo: PhotoFile) -> str:
        self.check_photo(photo)
        ref = self._store_photo(photo)
        logger.info("Stored photo %s (%d bytes) as %s", photo.filename, photo.size, ref)
        return ref

    @abc.abstractmethod
    def _store_photo(self, photo: PhotoFile) -> str:
        ...

    @abc.abstractmethod
    def resolve_photo(self, reference: str) -> bytes:
        ...

    def owns_reference(self, reference: str) -> bool:
        """True when `reference` names a photo held by this store."""
        try:
            self.resolve_photo(reference)
        except PhotoNotFound:
            return False
        return True

    # ---------- reports ----------

    def create_report(self, owner_id: str, payload: ReportPayload, photo_refs: Optional[Iterable[str]] = None) -> Report:
        now = self.now()
        report = Report(
            id=new_id(),
            user_id=owner_id,
            status='submitted',
            photo_urls=list(photo_refs or []),
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )
        entry = self._new_activity(owner_id, 'submit', resource_type='report', resource_id=report.id)
        self._insert_report(report, entry)
        logger.info("Report %s created by %s", report.id, owner_id)
        return report

    def get_my_reports(self, owner_id: str) -> List[Report]:
        return self._query_reports(ReportSearchFilters(owner_id=owner_id))

    def get_all_reports(self) -> List[Report]:
        return self._query_reports(ReportSearchFilters())

    def search_reports(self, filters: Optional[ReportSearchFilters] = None) -> List[Report]:
        return self._query_reports(filters or ReportSearchFilters())

    @abc.abstractmethod
    def get_report(self, report_id: str) -> Report:
        ...

    @abc.abstractmethod
    def _insert_report(self, report: Report, entry: Optional[ActivityLog] = None):
        """Store the report together with its audit entry; neither is kept if either write fails."""

    @abc.abstractmethod
    def _query_reports(self, filters: ReportSearchFilters) -> List[Report]:
        """Conjunctive filters, newest `created_at` first."""

    # ---------- audit ----------

    def record_activity(self, user_id: str, action: str, resource_type: Optional[str] = None,
                        resource_id: Optional[str] = None) -> ActivityLog:
        entry = self._new_activity(user_id, action, resource_type, resource_id)
        self._insert_activity(entry)
        return entry

    def _new_activity(self, user_id: str, action: str, resource_type: Optional[str] = None,
                      resource_id: Optional[str] = None) -> ActivityLog:
        return ActivityLog(
            id=new_id(),
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            created_at=self.now(),
        )

    @abc.abstractmethod
    def _insert_activity(self, entry: ActivityLog):
        ...

    @abc.abstractmethod
    def list_activity(self, user_id: Optional[str] = None) -> List[ActivityLog]:
        ...

    # ---------- accounts ----------

    def sign_up(self, email: str, full_name: str = '', role: str = 'employee') -> User:
        email = (email or '').strip().lower()
        if not email:
            raise AuthError('メールアドレスを入力してください')
        if self._find_user_by_email(email) is not None:
            raise AuthError('このメールアドレスは既に登録されています')
        user = User(id=new_id(), email=email, full_name=(full_name or '').strip(), role=role, created_at=self.now())
        self._insert_user(user)
        self.record_activity(user.id, 'signup')
        return user

    def sign_in(self, email: str) -> Session:
        # credentials are checked by the external auth provider
        user = self._find_user_by_email((email or '').strip().lower())
        if user is None:
            raise AuthError('メールアドレスまたはパスワードが正しくありません')
        session = Session(user=user, access_token=new_id())
        self._save_session(session)
        self.record_activity(user.id, 'login')
        return session

    def sign_out(self, user_id: str):
        self.record_activity(user_id, 'logout')
        self._save_session(None)

    def display_names(self, user_ids: Iterable[str]) -> Dict[str, str]:
        names: Dict[str, str] = {}
        for uid in user_ids:
            if uid in names:
                continue
            user = self.get_user(uid)
            if user is not None:
                names[uid] = user.display_name
        return names

    def _save_session(self, session: Optional[Session]):
        pass

    @abc.abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abc.abstractmethod
    def _find_user_by_email(self, email: str) -> Optional[User]:
        ...

    @abc.abstractmethod
    def _insert_user(self, user: User):
        ...
