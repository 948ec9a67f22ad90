# shiftreport/routes.py
import io
import json
from functools import wraps

from flask import jsonify, request, send_file

from shiftreport.demo_store import PHOTO_REF_PREFIX
from shiftreport.errors import AuthError, ReportValidationError, ShiftReportError
from shiftreport.image_manager import detect_media_type
from shiftreport.models import PhotoFile
from shiftreport.submission import submit_report
from shiftreport.validation import parse_search_filters


def handle_errors(logger):
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ShiftReportError as e:
                logger.info("%s on %s: %s", type(e).__name__, request.path, e.message)
                return jsonify(e.to_dict()), e.status_code
            except Exception as e:
                logger.exception("Unexpected error")
                return jsonify({'error': '内部サーバーエラー', 'msg': str(e)}), 500
        return decorated
    return decorator


def _photo_from_upload(storage) -> PhotoFile:
    return PhotoFile(
        filename=storage.filename or '',
        content_type=storage.mimetype or '',
        data=storage.read(),
    )


def _acting_user_id(body=None):
    """The auth provider in front of the app passes the user id through."""
    uid = request.headers.get('X-User-Id') or request.args.get('user_id')
    if not uid and isinstance(body, dict):
        uid = body.get('user_id') or body.get('userId')
    return (uid or '').strip() or None


def _require_user(body=None) -> str:
    uid = _acting_user_id(body)
    if not uid:
        raise AuthError('ログインが必要です')
    return uid


def _pdf_response(rendered):
    return send_file(
        io.BytesIO(rendered.content),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=rendered.filename,
    )


def init_routes(app, gateway, pdf_service, ocr_service, logger):

    @app.route('/')
    def index():
        return f"Shift Report Service ({gateway.name})"

    # ---------- accounts ----------

    @app.route('/api/auth/signup', methods=['POST'])
    @handle_errors(logger)
    def signup():
        body = request.get_json(silent=True) or {}
        user = gateway.sign_up(body.get('email'), body.get('full_name') or body.get('fullName') or '')
        return jsonify(user.model_dump(mode='json')), 201

    @app.route('/api/auth/login', methods=['POST'])
    @handle_errors(logger)
    def login():
        body = request.get_json(silent=True) or {}
        session = gateway.sign_in(body.get('email'))
        return jsonify(session.model_dump(mode='json'))

    @app.route('/api/auth/logout', methods=['POST'])
    @handle_errors(logger)
    def logout():
        body = request.get_json(silent=True) or {}
        gateway.sign_out(_require_user(body))
        return jsonify({'message': 'ログアウトしました'})

    # ---------- photos ----------

    @app.route('/api/photos', methods=['POST'])
    @handle_errors(logger)
    def upload_photo():
        upload = request.files.get('file') or request.files.get('photo')
        if upload is None:
            return jsonify({'error': 'ファイルが選択されていません'}), 400
        ref = gateway.upload_photo(_photo_from_upload(upload))
        return jsonify({'url': ref}), 201

    def _send_photo(reference):
        data = gateway.resolve_photo(reference)
        return send_file(io.BytesIO(data), mimetype=detect_media_type(data) or 'application/octet-stream')

    @app.route('/api/photos/demo/<photo_id>', methods=['GET'])
    @handle_errors(logger)
    def demo_photo(photo_id):
        return _send_photo(f"{PHOTO_REF_PREFIX}{photo_id}")

    @app.route('/storage/<path:object_path>', methods=['GET'])
    @handle_errors(logger)
    def storage_object(object_path):
        public_url = app.config.get('PUBLIC_STORAGE_URL', '/storage').rstrip('/')
        return _send_photo(f"{public_url}/{object_path}")

    # ---------- reports ----------

    @app.route('/api/reports', methods=['POST'])
    @handle_errors(logger)
    def create_report():
        """
        Accepts:
         - application/json with the form fields (photo_urls from /api/photos), or
         - multipart/form-data with a 'payload' JSON string and files under 'photos'
        """
        photos = []
        body = None
        if 'multipart/form-data' in (request.content_type or '').lower():
            raw_payload = request.form.get('payload')
            if raw_payload:
                try:
                    body = json.loads(raw_payload)
                except ValueError:
                    body = None
            photos = [_photo_from_upload(f) for f in request.files.getlist('photos')]
        else:
            body = request.get_json(silent=True)

        if not isinstance(body, dict):
            return jsonify({'error': 'JSONの形式が正しくありません'}), 400

        owner_id = _require_user(body)

        def _progress(done, total):
            logger.info("Report upload progress for %s: %d of %d", owner_id, done, total)

        report = submit_report(
            gateway, owner_id, body, photos,
            progress=_progress,
            photo_refs=body.get('photo_urls', body.get('photoUrls')),
        )
        return jsonify(report.model_dump(mode='json')), 201

    @app.route('/api/reports', methods=['GET'])
    @handle_errors(logger)
    def my_reports():
        owner_id = _require_user()
        return jsonify([r.model_dump(mode='json') for r in gateway.get_my_reports(owner_id)])

    @app.route('/api/reports/all', methods=['GET'])
    @handle_errors(logger)
    def all_reports():
        return jsonify([r.model_dump(mode='json') for r in gateway.get_all_reports()])

    @app.route('/api/reports/search', methods=['GET'])
    @handle_errors(logger)
    def search_reports():
        args = request.args.to_dict()
        args.pop('user_id', None)  # acting user, not the owner filter
        filters = parse_search_filters(args, gateway.tz_name)
        return jsonify([r.model_dump(mode='json') for r in gateway.search_reports(filters)])

    @app.route('/api/reports/<report_id>', methods=['GET'])
    @handle_errors(logger)
    def get_report(report_id):
        return jsonify(gateway.get_report(report_id).model_dump(mode='json'))

    @app.route('/api/reports/<report_id>/pdf', methods=['GET'])
    @handle_errors(logger)
    def report_pdf(report_id):
        report = gateway.get_report(report_id)
        viewer_id = _acting_user_id()
        names = gateway.display_names([uid for uid in (viewer_id, report.user_id) if uid])
        # an unknown viewer falls back to the owner
        signer = (names.get(viewer_id) or names.get(report.user_id)
                  or app.config.get('UNKNOWN_USER_NAME', '不明'))

        rendered = pdf_service.render_one(report, signer)
        if viewer_id:
            gateway.record_activity(viewer_id, 'download', resource_type='report', resource_id=report.id)
        return _pdf_response(rendered)

    @app.route('/api/reports/export', methods=['POST'])
    @handle_errors(logger)
    def export_reports():
        """
        Body: {"report_ids": [...]} in the wanted page order, or search filters
        (startDate, endDate, userId, contractName) to export every match.
        """
        body = request.get_json(silent=True) or {}
        actor_id = _acting_user_id()
        ids = body.get('report_ids') or body.get('reportIds')
        if ids:
            reports = [gateway.get_report(str(i)) for i in ids]
        else:
            filters = {k: v for k, v in body.items() if k != 'user_id'}
            reports = gateway.search_reports(parse_search_filters(filters, gateway.tz_name))
        if not reports:
            raise ReportValidationError({'report_ids': '出力する報告書がありません'})

        names = gateway.display_names(r.user_id for r in reports)
        rendered = pdf_service.render_batch(reports, names)
        if actor_id:
            for r in reports:
                gateway.record_activity(actor_id, 'download', resource_type='report', resource_id=r.id)
        return _pdf_response(rendered)

    # ---------- OCR assist ----------

    @app.route('/api/ocr', methods=['POST'])
    @handle_errors(logger)
    def ocr_assist():
        upload = request.files.get('image') or request.files.get('file')
        if upload is None:
            return jsonify({'error': '画像ファイルを選択してください。', 'code': 'INVALID_IMAGE'}), 400
        result = ocr_service.analyze_report(_photo_from_upload(upload))
        return jsonify(result.model_dump(mode='json'))
