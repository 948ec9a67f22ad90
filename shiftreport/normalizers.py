# shiftreport/normalizers.py
from typing import Any, Dict

from shiftreport.models import (
    FLAG_FIELDS, TEXT_FIELDS, WORK_TYPE_LABELS, WORK_TYPES, ReportFormData, coerce_flag, normalize_special_notes,
)

# keyword -> label, tried in order when no label appears verbatim
WORK_TYPE_KEYWORDS = (
    (('道路', '交通'), WORK_TYPES['ROAD_TRAFFIC']),
    (('建設', '工事'), WORK_TYPES['CONSTRUCTION_TRAFFIC']),
    (('車両', '出入'), WORK_TYPES['VEHICLE_ENTRY']),
    (('イベント',), WORK_TYPES['EVENT_TRAFFIC']),
    (('駐車',), WORK_TYPES['PARKING_TRAFFIC']),
    (('雑踏', '警戒'), WORK_TYPES['CROWD_CONTROL']),
)

FIELD_ALIASES = {
    'contractName': 'contract_name',
    'guardLocation': 'guard_location',
    'workType': 'work_type',
    'workDetail': 'work_detail',
    'workDateFrom': 'work_date_from',
    'workDateTo': 'work_date_to',
    'breakTime': 'break_time',
    'overtimeTime': 'overtime_time',
    'assignedGuards': 'assigned_guards',
    'specialNotes': 'special_notes',
    'specialNotesDetail': 'special_notes_detail',
    'trafficGuideAssigned': 'traffic_guide_assigned',
    'trafficGuideAssigneeName': 'traffic_guide_assignee_name',
    'miscGuardAssigned': 'misc_guard_assigned',
    'miscGuardAssigneeName': 'misc_guard_assignee_name',
}

OCR_CONFIDENCE_FIELDS = (
    'contract_name', 'guard_location', 'work_type', 'work_date_from', 'work_date_to',
    'weather', 'break_time', 'overtime_time', 'assigned_guards', 'remarks',
)


def _safe_str(x: Any) -> str:
    if x is None:
        return ''
    return str(x)


def match_work_type(text: Any) -> str:
    """
    Map free text (typically OCR output) onto one of the six work-type labels.
    Empty input stays empty; unrecognized text falls back to road traffic guidance.
    """
    s = _safe_str(text).strip()
    if not s:
        return ''
    for label in WORK_TYPE_LABELS:
        if label in s:
            return label
    if s in WORK_TYPES:
        return WORK_TYPES[s]
    for keywords, label in WORK_TYPE_KEYWORDS:
        if any(k in s for k in keywords):
            return label
    return WORK_TYPES['ROAD_TRAFFIC']


def normalize_guard_names(raw: Any) -> str:
    if isinstance(raw, (list, tuple)):
        names = [_safe_str(n).strip() for n in raw]
    else:
        s = _safe_str(raw).replace('\r\n', '\n').replace('\r', '\n').replace('\\n', '\n')
        names = [n.strip() for n in s.split('\n')]
    return '\n'.join(n for n in names if n)


def normalize_form_input(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Accept snake_case or camelCase keys; unknown keys are dropped."""
    if not isinstance(payload, dict):
        return payload
    normalized: Dict[str, Any] = {}
    for k, v in payload.items():
        key = FIELD_ALIASES.get(k, k)
        if key in TEXT_FIELDS or key in FLAG_FIELDS:
            normalized[key] = v
    if 'assigned_guards' in normalized:
        normalized['assigned_guards'] = normalize_guard_names(normalized['assigned_guards'])
    return normalized


def ocr_fields_to_form_data(raw: Dict[str, Any]) -> ReportFormData:
    """Best-effort mapping of the OCR JSON object onto a form draft."""
    data = normalize_form_input(raw)
    form: Dict[str, Any] = {}
    for field in TEXT_FIELDS:
        form[field] = _safe_str(data.get(field)).strip()
    for field in FLAG_FIELDS:
        flag = coerce_flag(data.get(field))
        form[field] = flag if isinstance(flag, bool) else False
    form['work_type'] = match_work_type(form['work_type'])
    form['special_notes'] = normalize_special_notes(form['special_notes'])
    form['assigned_guards'] = normalize_guard_names(data.get('assigned_guards'))
    return ReportFormData(**form)


def _field_score(value: Any) -> float:
    s = _safe_str(value).strip()
    if not s:
        return 0.0
    if len(s) >= 3:
        return 0.90
    if len(s) >= 2:
        return 0.75
    return 0.50


def confidence_score(raw: Dict[str, Any], quality_factor: float = 0.85) -> float:
    """Filled-field ratio scaled by a fixed quality constant."""
    filled = sum(1 for f in OCR_CONFIDENCE_FIELDS if _safe_str(raw.get(f)).strip())
    return min((filled / float(len(OCR_CONFIDENCE_FIELDS))) * quality_factor, 1.0)


def field_confidence(raw: Dict[str, Any]) -> Dict[str, float]:
    scores: Dict[str, float] = {}
    for f in OCR_CONFIDENCE_FIELDS + ('special_notes',):
        scores[f] = _field_score(raw.get(f))
    for f in FLAG_FIELDS:
        scores[f] = 0.95 if raw.get(f) is not None else 0.0
    return scores
