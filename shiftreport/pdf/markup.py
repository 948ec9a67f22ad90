# shiftreport/pdf/markup.py
from xml.sax.saxutils import escape as xml_escape

from reportlab.lib.styles import ParagraphStyle
from reportlab.platypus import Paragraph


def sanitize_for_paragraph(text):
    """Escape user text for Paragraph markup; newlines become <br/>."""
    if text is None:
        return ''
    txt = str(text).replace('\r\n', '\n').replace('\r', '\n')
    return xml_escape(txt).replace('\n', '<br/>')


def shrink_paragraph_to_fit(markup, base_style, max_w, max_h, min_font=6):
    """
    Reduce the font size until the Paragraph fits in max_w x max_h.
    Returns (paragraph, height) of the adjusted Paragraph.
    """
    para = Paragraph(markup, base_style)
    w, h = para.wrap(max_w, max_h)
    if h <= max_h:
        return para, h

    orig_size = getattr(base_style, 'fontSize', 9.5)
    ratio = float(getattr(base_style, 'leading', orig_size * 1.2)) / float(orig_size)
    size = orig_size - 0.5

    while size >= min_font:
        tmp_style = ParagraphStyle(name='tmp_shrink', parent=base_style, fontSize=size, leading=size * ratio)
        para_try = Paragraph(markup, tmp_style)
        w, h = para_try.wrap(max_w, max_h)
        if h <= max_h:
            return para_try, h
        size -= 0.5

    # overflow at the minimum size is clipped by the caller
    tmp_style = ParagraphStyle(name='tmp_shrink_min', parent=base_style, fontSize=min_font, leading=min_font * ratio)
    para_min = Paragraph(markup, tmp_style)
    w, h = para_min.wrap(max_w, max_h)
    return para_min, h
