import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler

from flask import Flask, got_request_exception, request

from shiftreport.config import Config
from shiftreport.gateway import ReportGateway, create_gateway
from shiftreport.ocr_service import OCRService
from shiftreport.pdf import PDFService
from shiftreport.routes import init_routes


def setup_logging(log_path=None):
    logger = logging.getLogger('shiftreport')
    logger.setLevel(logging.INFO)

    # avoid duplicate handlers when create_app runs more than once
    if not logger.handlers:
        log_path = log_path or Config.LOG_PATH
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=10_000_000, backupCount=5, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
        logger.addHandler(file_handler)
        logger.addHandler(stream_handler)

    return logger


class MyFlask(Flask):
    # declared for static checkers
    gateway: ReportGateway
    pdf_service: PDFService
    ocr_service: OCRService


def create_app(config_object=None, gateway=None, ocr_service=None):
    config = config_object or Config
    app = MyFlask(__name__)
    app.config.from_object(config)

    logger = setup_logging(getattr(config, 'LOG_PATH', None))

    # one adapter per process, chosen from STORE_BACKEND
    app.gateway = gateway or create_gateway(config)
    app.pdf_service = PDFService(config)
    app.ocr_service = ocr_service or OCRService(config)
    logger.info("Using %s store; OCR configured: %s", app.gateway.name, app.ocr_service.is_configured())

    init_routes(app, app.gateway, app.pdf_service, app.ocr_service, logger)

    def _log_request_exception(sender, exception, **extra):
        rid = request.headers.get('X-Request-ID', '') or ''
        logger.error("Unhandled exception (rid=%s): %s", rid, traceback.format_exc())
        sys.stderr.flush()

    got_request_exception.connect(_log_request_exception, app)

    return app


if __name__ == '__main__':
    # local runs only; production goes through wsgi:app
    from waitress import serve

    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    serve(app, host='0.0.0.0', port=port)
