# shiftreport/errors.py
from typing import Any, Dict, Optional


class ShiftReportError(Exception):
    """Base class for errors surfaced to the caller of a single user action."""
    status_code = 500

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {'error': self.message}


class ReportValidationError(ShiftReportError):
    status_code = 400

    def __init__(self, errors: Dict[str, str]):
        super().__init__('入力内容に誤りがあります')
        self.errors = dict(errors)

    def to_dict(self):
        return {'error': self.message, 'errors': self.errors}


class PhotoUploadError(ShiftReportError):
    status_code = 400


class ReportNotFound(ShiftReportError):
    status_code = 404

    def __init__(self, report_id: str):
        super().__init__('報告書が見つかりません')
        self.report_id = report_id


class PhotoNotFound(ShiftReportError):
    status_code = 404

    def __init__(self, reference: str):
        super().__init__('写真が見つかりません')
        self.reference = reference


class AuthError(ShiftReportError):
    status_code = 401


class BackendError(ShiftReportError):
    status_code = 502


class OCRError(ShiftReportError):
    INVALID_IMAGE = 'INVALID_IMAGE'
    NOT_CONFIGURED = 'NOT_CONFIGURED'
    API_ERROR = 'API_ERROR'
    PARSE_ERROR = 'PARSE_ERROR'
    COMPLIANCE_VIOLATION = 'COMPLIANCE_VIOLATION'

    STATUS_BY_CODE = {
        INVALID_IMAGE: 400,
        NOT_CONFIGURED: 503,
        API_ERROR: 502,
        PARSE_ERROR: 502,
        COMPLIANCE_VIOLATION: 422,
    }

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.status_code = self.STATUS_BY_CODE.get(code, 500)

    def to_dict(self):
        body = {'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body
