# shiftreport/validation.py
import logging
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from shiftreport.errors import ReportValidationError
from shiftreport.models import DEFAULT_TIMEZONE, ReportFormData, ReportPayload, ReportSearchFilters
from shiftreport.normalizers import normalize_form_input

logger = logging.getLogger(__name__)


FILTER_ALIASES = {
    'startDate': 'start_date',
    'endDate': 'end_date',
    'ownerId': 'owner_id',
    'user_id': 'owner_id',
    'userId': 'owner_id',
    'contractName': 'contract_name',
}


def errors_by_field(exc: ValidationError, aliases: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """First message for every failing field; model-level errors go under '__all__'."""
    out: Dict[str, str] = {}
    for err in exc.errors():
        loc = err.get('loc') or ()
        field = str(loc[0]) if loc else '__all__'
        # pydantic reports the key as it appeared in the input
        field = (aliases or {}).get(field, field)
        if field not in out:
            out[field] = err.get('msg') or 'invalid'
    return out


def validate_report(data: Union[ReportFormData, Mapping[str, Any]], timezone: Optional[str] = None) -> ReportPayload:
    """
    Turn a form draft (manual entry or OCR assist) into the canonical payload.
    Raises ReportValidationError listing every violated field.
    """
    if isinstance(data, ReportFormData):
        raw = data.model_dump()
    else:
        raw = normalize_form_input(dict(data or {}))
    try:
        return ReportPayload.model_validate(raw, context={'timezone': timezone or DEFAULT_TIMEZONE})
    except ValidationError as e:
        errors = errors_by_field(e)
        logger.info("Report validation failed: %s", ', '.join(sorted(errors)))
        raise ReportValidationError(errors) from e


def parse_search_filters(data: Optional[Mapping[str, Any]], timezone: Optional[str] = None) -> ReportSearchFilters:
    try:
        return ReportSearchFilters.model_validate(dict(data or {}), context={'timezone': timezone or DEFAULT_TIMEZONE})
    except ValidationError as e:
        raise ReportValidationError(errors_by_field(e, FILTER_ALIASES)) from e
