# shiftreport/pdf/font_manager.py
import logging
import os

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfbase.ttfonts import TTFont, TTFError

logger = logging.getLogger(__name__)


class FontManager:
    """
    Registers the Japanese fonts used by the report.
    TTF files from config are preferred; without them reportlab's built-in
    CID font is used for both weights.
        fm = FontManager(config=Config)
        # then use fm.FONT_REGULAR and fm.FONT_BOLD in the styles
    """

    def __init__(self, config=None):
        self.cid_name = getattr(config, 'CID_FONT_NAME', 'HeiseiKakuGo-W5')
        self.FONT_REGULAR = self.cid_name
        self.FONT_BOLD = self.cid_name
        self._setup_fonts(config)

    def _register_ttf(self, name, path):
        if not path or not os.path.exists(path):
            return False
        if name in pdfmetrics.getRegisteredFontNames():
            return True
        try:
            pdfmetrics.registerFont(TTFont(name, path))
            return True
        except TTFError:
            logger.warning("Could not register TTF font %s from %s", name, path)
            return False

    def _setup_fonts(self, config):
        if self.cid_name not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(UnicodeCIDFont(self.cid_name))

        reg_name = getattr(config, 'FONT_REGULAR_NAME', 'NotoSansJP')
        bold_name = getattr(config, 'FONT_BOLD_NAME', 'NotoSansJP-Bold')

        if self._register_ttf(reg_name, getattr(config, 'FONT_REGULAR_PATH', None)):
            self.FONT_REGULAR = reg_name
            # bold falls back to the regular face
            self.FONT_BOLD = reg_name
        if self._register_ttf(bold_name, getattr(config, 'FONT_BOLD_PATH', None)):
            self.FONT_BOLD = bold_name

    def font_for(self, role):
        return self.FONT_BOLD if role == 'bold' else self.FONT_REGULAR
