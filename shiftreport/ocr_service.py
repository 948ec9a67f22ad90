# shiftreport/ocr_service.py
import base64
import json
import logging
import re
import time
from typing import Any, Dict, Optional

import requests

from shiftreport.errors import OCRError
from shiftreport.image_manager import detect_media_type, prepare_for_ocr
from shiftreport.models import (
    ComplianceCheck, OCRAnalysisResult, OCRMetadata, PhotoFile, ReportFormData,
)
from shiftreport.normalizers import FIELD_ALIASES, confidence_score, field_confidence, ocr_fields_to_form_data
from shiftreport.utils import now_local

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """この画像は警備報告書です。以下の項目を正確に読み取り、JSON形式で返してください。

【読み取り項目】
1. contract_name: 契約先（会社名）
2. guard_location: 警備場所（住所・場所名）
3. work_type: 業務内容（チェックボックスから選択されているもの）
4. work_date_from: 勤務開始日時（自）ISO 8601形式
5. work_date_to: 勤務終了日時（至）ISO 8601形式
6. weather: 天気
7. break_time: 休憩時間
8. overtime_time: 残業時間
9. assigned_guards: 担当警備員（複数の場合は改行区切り）
10. special_notes: 特記事項（「あり」または「なし」）
11. special_notes_detail: 特記事項の内容
12. traffic_guide_assigned: 交通誘導検定合格者配置（true/false）
13. traffic_guide_assignee_name: 検定合格者氏名（交通誘導）
14. misc_guard_assigned: 雑踏警備検定合格者配置（true/false）
15. misc_guard_assignee_name: 検定合格者氏名（雑踏警備）
16. remarks: 備考

【JSON形式の例】
{
  "contract_name": "積水ハウス建設事務所(株) 御中",
  "guard_location": "大阪市都島区星陵ビル7m",
  "work_type": "道路工事に於ける交通誘導",
  "work_date_from": "2026-01-15T08:00:00",
  "work_date_to": "2026-01-15T17:00:00",
  "weather": "晴れ",
  "break_time": "1時間",
  "overtime_time": "2時間",
  "assigned_guards": "山田 太郎\\n佐藤 次郎",
  "special_notes": "なし",
  "special_notes_detail": "",
  "traffic_guide_assigned": true,
  "traffic_guide_assignee_name": "山田 太郎",
  "misc_guard_assigned": false,
  "misc_guard_assignee_name": "",
  "remarks": "特に問題なし"
}

**重要**:
- JSONのみを返してください（説明文は不要）
- 読み取れない項目は空文字列 "" にしてください
- 日時はISO 8601形式で返してください
- boolean値はtrue/falseで返してください"""

FENCED_JSON = re.compile(r'```json\s*([\s\S]*?)\s*```')
FENCED_ANY = re.compile(r'```\s*([\s\S]*?)\s*```')

BANNED_TERMS = ('差別', '暴力', '脅迫', '侮辱')
BANNED_TERM_PENALTY = 0.25
MISSING_FIELD_PENALTY = 0.1
COMPLIANCE_THRESHOLD = 0.95


def extract_json_text(response_text: str) -> str:
    """The model may wrap its JSON in a fenced code block."""
    match = FENCED_JSON.search(response_text) or FENCED_ANY.search(response_text)
    if match:
        return match.group(1).strip()
    return response_text.strip()


def check_compliance(form: ReportFormData) -> ComplianceCheck:
    violations = []
    score = 1.0
    all_text = f"{form.contract_name} {form.guard_location} {form.remarks}"
    for term in BANNED_TERMS:
        if term in all_text:
            violations.append(f'不適切な内容が検出されました: {term}')
            score -= BANNED_TERM_PENALTY
    if not form.contract_name.strip():
        violations.append('必須項目「契約先」が未入力です')
        score -= MISSING_FIELD_PENALTY
    if not form.guard_location.strip():
        violations.append('必須項目「警備場所」が未入力です')
        score -= MISSING_FIELD_PENALTY
    return ComplianceCheck(
        is_compliant=not violations and score >= COMPLIANCE_THRESHOLD,
        score=max(score, 0.0),
        violations=violations,
    )


class OCRService:
    """
    Reads a photographed paper report with a vision-capable messages API and
    returns a best-effort form draft. The draft still goes through validation.
    """

    def __init__(self, config, session: Optional[requests.Session] = None):
        self.config = config
        self.api_key = getattr(config, 'ANTHROPIC_API_KEY', '') or ''
        self.api_url = getattr(config, 'OCR_API_URL', 'https://api.anthropic.com/v1/messages')
        self.api_version = getattr(config, 'OCR_API_VERSION', '2023-06-01')
        self.model = getattr(config, 'OCR_MODEL', '')
        self.max_tokens = int(getattr(config, 'OCR_MAX_TOKENS', 4096))
        self.timeout = getattr(config, 'OCR_TIMEOUT', None)
        self.tz_name = getattr(config, 'TIMEZONE', 'Asia/Tokyo')
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _check_image(self, photo: PhotoFile) -> str:
        declared = (photo.content_type or '').lower()
        detected = detect_media_type(photo.data)
        if not declared.startswith('image/') or detected is None:
            raise OCRError(OCRError.INVALID_IMAGE, '画像ファイルを選択してください。',
                           {'type': photo.content_type, 'filename': photo.filename})
        return detected

    def _request_body(self, image_b64: str, media_type: str) -> Dict[str, Any]:
        return {
            'model': self.model,
            'max_tokens': self.max_tokens,
            'messages': [{
                'role': 'user',
                'content': [
                    {'type': 'image', 'source': {'type': 'base64', 'media_type': media_type, 'data': image_b64}},
                    {'type': 'text', 'text': EXTRACTION_PROMPT},
                ],
            }],
        }

    def _call_api(self, image_bytes: bytes, media_type: str) -> str:
        headers = {
            'x-api-key': self.api_key,
            'anthropic-version': self.api_version,
            'content-type': 'application/json',
        }
        body = self._request_body(base64.b64encode(image_bytes).decode('ascii'), media_type)
        try:
            resp = self.session.post(self.api_url, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("OCR request failed: %s", e)
            raise OCRError(OCRError.API_ERROR, f'OCR解析中にエラーが発生しました: {e}') from e

        if resp.status_code >= 400:
            logger.warning("OCR API returned HTTP %s", resp.status_code)
            raise OCRError(OCRError.API_ERROR, 'OCR解析中にエラーが発生しました',
                           {'status': resp.status_code, 'body': resp.text[:500]})
        try:
            message = resp.json()
        except ValueError as e:
            raise OCRError(OCRError.API_ERROR, 'OCR APIの応答が不正です', {'body': resp.text[:500]}) from e

        content = (message.get('content') or []) if isinstance(message, dict) else []
        first = content[0] if content else {}
        if isinstance(first, dict) and first.get('type') == 'text':
            return first.get('text') or ''
        return ''

    def _parse(self, response_text: str) -> Dict[str, Any]:
        json_text = extract_json_text(response_text)
        try:
            raw = json.loads(json_text)
        except ValueError as e:
            raise OCRError(OCRError.PARSE_ERROR, 'OCR APIのレスポンスをJSONとして解析できませんでした。',
                           {'response': response_text[:2000], 'parse_error': str(e)}) from e
        if not isinstance(raw, dict):
            raise OCRError(OCRError.PARSE_ERROR, 'OCR APIのレスポンスがJSONオブジェクトではありません。',
                           {'response': response_text[:2000]})
        return {FIELD_ALIASES.get(k, k): v for k, v in raw.items()}

    def analyze_report(self, photo: PhotoFile) -> OCRAnalysisResult:
        started = time.monotonic()
        media_type = self._check_image(photo)
        if not self.is_configured():
            raise OCRError(OCRError.NOT_CONFIGURED,
                           'Anthropic APIキーが設定されていません。環境変数 ANTHROPIC_API_KEY を設定してください。')

        image_bytes, media_type = prepare_for_ocr(
            photo.data, media_type,
            int(getattr(self.config, 'OCR_IMAGE_MAX_BYTES', 3_500_000)),
            int(getattr(self.config, 'OCR_IMAGE_MAX_PX', 2400)),
        )
        raw = self._parse(self._call_api(image_bytes, media_type))

        form = ocr_fields_to_form_data(raw)
        compliance = check_compliance(form)
        if not compliance.is_compliant:
            logger.info("OCR result rejected: %s", '; '.join(compliance.violations))
            raise OCRError(OCRError.COMPLIANCE_VIOLATION, '不適切な内容または必須項目の欠落が検出されました。',
                           {'violations': compliance.violations})

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("OCR analysis of %s finished in %d ms", photo.filename, elapsed_ms)
        return OCRAnalysisResult(
            form_data=form,
            confidence_score=confidence_score(raw),
            field_confidence=field_confidence(raw),
            compliance=compliance,
            metadata=OCRMetadata(analyzed_at=now_local(self.tz_name), processing_time_ms=elapsed_ms,
                                 model_version=self.model),
        )
