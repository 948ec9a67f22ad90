# config.py
import os


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Config:
    """
    Central configuration. Deployment values can be overridden through
    environment variables; the report layout constants are edited here.
    """

    # -------------------------
    # Paths
    # -------------------------
    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    PROJECT_DIR = os.path.dirname(BASE_DIR)

    DATABASE = os.environ.get('SHIFTREPORT_DATABASE', os.path.join(PROJECT_DIR, 'instance', 'reports.db'))
    STORAGE_DIR = os.environ.get('SHIFTREPORT_STORAGE_DIR', os.path.join(PROJECT_DIR, 'instance', 'storage'))
    DEMO_STORE_PATH = os.environ.get('SHIFTREPORT_DEMO_STORE', '')  # '' => in-memory demo store
    LOG_PATH = os.environ.get('SHIFTREPORT_LOG_PATH', os.path.join(PROJECT_DIR, 'app.log'))

    # -------------------------
    # Backing store: 'sqlite' (real backend) or 'demo' (local key/value store)
    # -------------------------
    STORE_BACKEND = os.environ.get('SHIFTREPORT_STORE', 'demo')
    PHOTO_BUCKET = 'report-photos'
    PUBLIC_STORAGE_URL = os.environ.get('SHIFTREPORT_PUBLIC_STORAGE_URL', '/storage')
    SEED_DEMO_DATA = True

    # -------------------------
    # Photo upload
    # -------------------------
    MAX_PHOTO_BYTES = 5 * 1024 * 1024
    ALLOWED_PHOTO_TYPES = ('image/jpeg', 'image/png', 'image/jpg')

    # -------------------------
    # OCR assist (vision-capable messages API)
    # -------------------------
    ANTHROPIC_API_KEY = os.environ.get('ANTHROPIC_API_KEY', '')
    OCR_API_URL = os.environ.get('SHIFTREPORT_OCR_API_URL', 'https://api.anthropic.com/v1/messages')
    OCR_API_VERSION = '2023-06-01'
    OCR_MODEL = os.environ.get('SHIFTREPORT_OCR_MODEL', 'claude-3-5-sonnet-20241022')
    OCR_MAX_TOKENS = 4096
    # None => no timeout besides the transport's own
    OCR_TIMEOUT = _env_float('SHIFTREPORT_OCR_TIMEOUT', None)
    OCR_IMAGE_MAX_BYTES = 3_500_000
    OCR_IMAGE_MAX_PX = 2400

    # -------------------------
    # Locale
    # -------------------------
    TIMEZONE = os.environ.get('SHIFTREPORT_TIMEZONE', 'Asia/Tokyo')
    UNKNOWN_USER_NAME = '不明'

    # -------------------------
    # Organization (PDF footer / file names)
    # -------------------------
    ORG_NAME = 'セリュートラスト株式会社'
    ORG_ADDRESS = '〒674-0058 兵庫県明石市大久保町駅前二丁目1番地の10'
    ORG_CONTACT = 'TEL 078-945-5628　FAX 078-945-5629'
    REPORT_TITLE = '警備報告書（当社控）'
    BATCH_FILE_LABEL = '警備報告書一括'

    # -------------------------
    # Fonts
    # -------------------------
    # Optional TTF files; when missing the built-in Japanese CID font is used.
    FONT_REGULAR_PATH = os.path.join(BASE_DIR, 'static', 'fonts', 'NotoSansJP-Regular.ttf')
    FONT_BOLD_PATH = os.path.join(BASE_DIR, 'static', 'fonts', 'NotoSansJP-Bold.ttf')
    FONT_REGULAR_NAME = 'NotoSansJP'
    FONT_BOLD_NAME = 'NotoSansJP-Bold'
    CID_FONT_NAME = 'HeiseiKakuGo-W5'

    # -------------------------
    # Base sizes (pts)
    # -------------------------
    TITLE_FONT_SIZE = 16.0
    LABEL_FONT_SIZE = 9.5
    VALUE_FONT_SIZE = 9.5
    SMALL_FONT_SIZE = 7.0
    FOOTER_FONT_SIZE = 8.5
    MIN_FONT_SIZE = 6.0

    # -------------------------
    # Page geometry (mm unless noted)
    # -------------------------
    PAGE_MARGIN_MM = 10.0
    BLOCK_GAP = 6.0           # pts between blocks
    LINE_WIDTH = 0.6
    LINE_GRAY_HEX = '#E0E0E0'
    GUARD_SLOTS = 6
    GUARD_COLUMNS = 2

    # -------------------------
    # Others
    # -------------------------
    DEBUG = os.environ.get('SHIFTREPORT_DEBUG', '').lower() in ('1', 'true', 'yes')
    TESTING = False
