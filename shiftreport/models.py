from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from shiftreport.utils import is_date_only, parse_timestamp

DEFAULT_TIMEZONE = 'Asia/Tokyo'

WORK_TYPES: Dict[str, str] = {
    'ROAD_TRAFFIC': '道路工事に於ける交通誘導',
    'CONSTRUCTION_TRAFFIC': '建設工事現場に於ける交通誘導',
    'VEHICLE_ENTRY': '工事関係車両の出入口に伴う交通誘導',
    'EVENT_TRAFFIC': 'イベントに伴う交通誘導',
    'PARKING_TRAFFIC': '駐車場の出入りに伴う交通誘導',
    'CROWD_CONTROL': '人の雑踏する場所に於ける負傷者等の事故発生を警戒・防止業務',
}
WORK_TYPE_LABELS = tuple(WORK_TYPES.values())

SPECIAL_NOTES_YES = 'yes'
SPECIAL_NOTES_NO = 'no'

ReportStatus = Literal['submitted', 'approved', 'rejected']
UserRole = Literal['employee', 'admin']
ActivityAction = Literal['signup', 'login', 'logout', 'submit', 'download']

TEXT_FIELDS = (
    'contract_name', 'guard_location', 'work_type', 'work_detail',
    'work_date_from', 'work_date_to', 'weather', 'break_time', 'overtime_time',
    'assigned_guards', 'special_notes', 'special_notes_detail',
    'traffic_guide_assignee_name', 'misc_guard_assignee_name', 'remarks',
)
FLAG_FIELDS = ('traffic_guide_assigned', 'misc_guard_assigned')

# field -> (max length, message when too long)
FIELD_LIMITS: Dict[str, tuple] = {
    'contract_name': (200, '契約先は200文字以内で入力してください'),
    'guard_location': (300, '警備場所は300文字以内で入力してください'),
    'work_detail': (1000, '担当業務詳細は1000文字以内で入力してください'),
    'weather': (20, '天気は20文字以内で入力してください'),
    'break_time': (20, '休憩時間は20文字以内で入力してください'),
    'overtime_time': (20, '残業時間は20文字以内で入力してください'),
    'assigned_guards': (500, '担当警備員は500文字以内で入力してください'),
    'special_notes': (10, '特記事項の選択は10文字以内で入力してください'),
    'special_notes_detail': (2000, '特記事項の内容は2000文字以内で入力してください'),
    'traffic_guide_assignee_name': (100, '検定合格者氏名は100文字以内で入力してください'),
    'misc_guard_assignee_name': (100, '検定合格者氏名は100文字以内で入力してください'),
    'remarks': (2000, '備考は2000文字以内で入力してください'),
}

REQUIRED_FIELDS = ('contract_name', 'guard_location', 'work_type', 'work_date_from', 'work_date_to')

REQUIRED_MESSAGES: Dict[str, str] = {
    'contract_name': '契約先を入力してください',
    'guard_location': '警備場所を入力してください',
    'work_type': '業務内容を選択してください',
    'work_date_from': '勤務開始日時を入力してください',
    'work_date_to': '勤務終了日時を入力してください',
    'special_notes_detail': '特記事項の内容を入力してください',
}

INVALID_DATE_MESSAGE = '有効な日時を入力してください'
DATE_ORDER_MESSAGE = '勤務終了日時は勤務開始日時より後である必要があります'
INVALID_WORK_TYPE_MESSAGE = '業務内容は一覧から選択してください'
INVALID_SPECIAL_NOTES_MESSAGE = '特記事項は「あり」または「なし」を選択してください'
ASSIGNEE_WITHOUT_FLAG_MESSAGE = '検定合格者を配置した場合のみ氏名を入力してください'
INVALID_FLAG_MESSAGE = '検定合格者の配置は「あり」または「なし」を選択してください'

TRUE_TOKENS = ('1', 'true', 't', 'yes', 'y', 'on', 'あり', '有', '○', '〇')
FALSE_TOKENS = ('', '0', 'false', 'f', 'no', 'n', 'off', 'なし', '無', '×')


def coerce_flag(v: Any) -> Any:
    if v is None:
        return False
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in TRUE_TOKENS:
            return True
        if s in FALSE_TOKENS:
            return False
    return v


def normalize_special_notes(v: Any) -> str:
    s = str(v or '').strip()
    if not s:
        return ''
    flag = coerce_flag(s)
    if flag is True:
        return SPECIAL_NOTES_YES
    if flag is False:
        return SPECIAL_NOTES_NO
    return s


def _as_text(v: Any) -> str:
    if v is None:
        return ''
    return str(v).strip()


def _tz(info: ValidationInfo) -> str:
    ctx = info.context or {}
    return ctx.get('timezone') or DEFAULT_TIMEZONE


def _fail(field: str, message: str):
    raise PydanticCustomError('report_field', message, {'field': field})


def _check_text(field: str, v: Any) -> str:
    s = _as_text(v)
    if field in REQUIRED_FIELDS and not s:
        _fail(field, REQUIRED_MESSAGES[field])
    limit = FIELD_LIMITS.get(field)
    if limit and len(s) > limit[0]:
        _fail(field, limit[1])
    return s


class ReportFormData(BaseModel):
    """Unvalidated form draft, filled by a person or by OCR assist."""
    model_config = ConfigDict(extra='ignore')

    contract_name: str = ''
    guard_location: str = ''
    work_type: str = ''
    work_detail: str = ''
    work_date_from: str = ''
    work_date_to: str = ''
    weather: str = ''
    break_time: str = ''
    overtime_time: str = ''
    assigned_guards: str = ''
    special_notes: str = ''
    special_notes_detail: str = ''
    traffic_guide_assigned: bool = False
    traffic_guide_assignee_name: str = ''
    misc_guard_assigned: bool = False
    misc_guard_assignee_name: str = ''
    remarks: str = ''

    @field_validator(*TEXT_FIELDS, mode='before')
    @classmethod
    def _coerce_text(cls, v):
        if v is None:
            return ''
        if isinstance(v, datetime):
            return v.isoformat()
        return v if isinstance(v, str) else str(v)

    @field_validator(*FLAG_FIELDS, mode='before')
    @classmethod
    def _coerce_flags(cls, v):
        flag = coerce_flag(v)
        return flag if isinstance(flag, bool) else False


class ReportPayload(BaseModel):
    """Canonical, validated report data accepted by the persistence gateways."""
    model_config = ConfigDict(extra='ignore')

    contract_name: str = Field(default='', validate_default=True)
    guard_location: str = Field(default='', validate_default=True)
    work_type: str = Field(default='', validate_default=True)
    work_detail: str = ''
    work_date_from: datetime = Field(default=None, validate_default=True)
    work_date_to: datetime = Field(default=None, validate_default=True)
    weather: str = ''
    break_time: str = ''
    overtime_time: str = ''
    assigned_guards: str = ''
    special_notes: str = ''
    special_notes_detail: str = Field(default='', validate_default=True)
    traffic_guide_assigned: bool = False
    traffic_guide_assignee_name: str = ''
    misc_guard_assigned: bool = False
    misc_guard_assignee_name: str = ''
    remarks: str = ''

    @field_validator('contract_name', 'guard_location', 'work_detail', 'weather',
                     'break_time', 'overtime_time', 'assigned_guards', 'remarks', mode='before')
    @classmethod
    def _validate_text(cls, v, info: ValidationInfo):
        return _check_text(info.field_name, v)

    @field_validator('work_type', mode='before')
    @classmethod
    def _validate_work_type(cls, v):
        s = _check_text('work_type', v)
        if s not in WORK_TYPE_LABELS:
            _fail('work_type', INVALID_WORK_TYPE_MESSAGE)
        return s

    @field_validator('work_date_from', 'work_date_to', mode='before')
    @classmethod
    def _validate_dates(cls, v, info: ValidationInfo):
        field = info.field_name
        if v is None or (isinstance(v, str) and not v.strip()):
            _fail(field, REQUIRED_MESSAGES[field])
        dt = parse_timestamp(v, _tz(info))
        if dt is None:
            _fail(field, INVALID_DATE_MESSAGE)
        if field == 'work_date_to':
            start = info.data.get('work_date_from')
            if start is not None and dt <= start:
                _fail(field, DATE_ORDER_MESSAGE)
        return dt

    @field_validator('special_notes', mode='before')
    @classmethod
    def _validate_special_notes(cls, v):
        s = _check_text('special_notes', v)
        s = normalize_special_notes(s)
        if s not in ('', SPECIAL_NOTES_YES, SPECIAL_NOTES_NO):
            _fail('special_notes', INVALID_SPECIAL_NOTES_MESSAGE)
        return s

    @field_validator('special_notes_detail', mode='before')
    @classmethod
    def _validate_special_notes_detail(cls, v, info: ValidationInfo):
        s = _check_text('special_notes_detail', v)
        if info.data.get('special_notes') == SPECIAL_NOTES_YES and not s:
            _fail('special_notes_detail', REQUIRED_MESSAGES['special_notes_detail'])
        return s

    @field_validator(*FLAG_FIELDS, mode='before')
    @classmethod
    def _validate_flags(cls, v, info: ValidationInfo):
        flag = coerce_flag(v)
        if not isinstance(flag, bool):
            _fail(info.field_name, INVALID_FLAG_MESSAGE)
        return flag

    @field_validator('traffic_guide_assignee_name', 'misc_guard_assignee_name', mode='before')
    @classmethod
    def _validate_assignee(cls, v, info: ValidationInfo):
        field = info.field_name
        s = _check_text(field, v)
        flag_field = field.replace('_assignee_name', '_assigned')
        if s and not info.data.get(flag_field, False):
            _fail(field, ASSIGNEE_WITHOUT_FLAG_MESSAGE)
        return s


class Report(BaseModel):
    id: str
    user_id: str
    status: ReportStatus = 'submitted'

    contract_name: str
    guard_location: str
    work_type: str
    work_detail: str = ''
    work_date_from: datetime
    work_date_to: datetime
    weather: str = ''
    break_time: str = ''
    overtime_time: str = ''
    assigned_guards: str = ''
    photo_urls: List[str] = Field(default_factory=list)
    special_notes: str = ''
    special_notes_detail: str = ''
    traffic_guide_assigned: bool = False
    traffic_guide_assignee_name: str = ''
    misc_guard_assigned: bool = False
    misc_guard_assignee_name: str = ''
    remarks: str = ''

    created_at: datetime
    updated_at: datetime

    @property
    def has_special_notes(self) -> bool:
        return self.special_notes == SPECIAL_NOTES_YES or bool(self.special_notes_detail)

    def guard_names(self) -> List[str]:
        return [g.strip() for g in (self.assigned_guards or '').split('\n') if g.strip()]


class User(BaseModel):
    id: str
    email: str
    full_name: str = ''
    role: UserRole = 'employee'
    created_at: datetime

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


class Session(BaseModel):
    user: User
    access_token: str


class ActivityLog(BaseModel):
    id: str
    user_id: str
    action: ActivityAction
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    created_at: datetime


class PhotoFile(BaseModel):
    filename: str = ''
    content_type: str = ''
    data: bytes = b''

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        if '.' in (self.filename or ''):
            return self.filename.rsplit('.', 1)[-1].lower()
        return 'png' if self.content_type == 'image/png' else 'jpg'


class ReportSearchFilters(BaseModel):
    start_date: Optional[datetime] = Field(default=None, validation_alias=AliasChoices('start_date', 'startDate'))
    end_date: Optional[datetime] = Field(default=None, validation_alias=AliasChoices('end_date', 'endDate'))
    owner_id: Optional[str] = Field(default=None, validation_alias=AliasChoices('owner_id', 'ownerId', 'user_id', 'userId'))
    contract_name: Optional[str] = Field(default=None, validation_alias=AliasChoices('contract_name', 'contractName'))

    @field_validator('owner_id', 'contract_name', mode='before')
    @classmethod
    def _blank_is_unset(cls, v):
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def _parse_bound(cls, v, info: ValidationInfo):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        dt = parse_timestamp(v, _tz(info))
        if dt is None:
            raise PydanticCustomError('report_field', INVALID_DATE_MESSAGE)
        # a bare date as upper bound covers the whole day
        if info.field_name == 'end_date' and is_date_only(v):
            dt = dt.replace(hour=23, minute=59, second=59)
        return dt

    def is_empty(self) -> bool:
        return not (self.start_date or self.end_date or self.owner_id or self.contract_name)


class ComplianceCheck(BaseModel):
    is_compliant: bool
    score: float
    violations: List[str] = Field(default_factory=list)


class OCRMetadata(BaseModel):
    analyzed_at: datetime
    processing_time_ms: int
    model_version: str


class OCRAnalysisResult(BaseModel):
    form_data: ReportFormData
    confidence_score: float
    field_confidence: Dict[str, float]
    compliance: ComplianceCheck
    metadata: OCRMetadata
