# shiftreport/pdf/styles_builder.py
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.styles import ParagraphStyle, StyleSheet1


def make_styles(config, font_regular):
    """
    Paragraph styles for the user-supplied values on the page.
    Sizes come from config and never go below MIN_FONT_SIZE.
    """

    def _num(x, fallback):
        try:
            return float(x) if x is not None else float(fallback)
        except (TypeError, ValueError):
            return float(fallback)

    min_sz = _num(getattr(config, 'MIN_FONT_SIZE', 6.0), 6.0)
    value_sz = max(min_sz, _num(getattr(config, 'VALUE_FONT_SIZE', None), 9.5))

    styles = StyleSheet1()

    def add(name, **kwargs):
        # CJK wrapping breaks between any two characters
        kwargs.setdefault('wordWrap', 'CJK')
        kwargs.setdefault('spaceBefore', 0)
        kwargs.setdefault('spaceAfter', 0)
        styles.add(ParagraphStyle(name=name, **kwargs))

    add('value', fontName=font_regular, fontSize=value_sz, leading=value_sz * 1.3, alignment=TA_LEFT)
    add('value_center', fontName=font_regular, fontSize=value_sz, leading=value_sz * 1.3, alignment=TA_CENTER)

    return styles
