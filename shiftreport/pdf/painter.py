# shiftreport/pdf/painter.py
from reportlab.lib import colors

from .layout import BoxItem, CheckItem, PageLayout, ParagraphItem, TextItem
from .markup import shrink_paragraph_to_fit


class LayoutPainter:
    """Draws a PageLayout onto a reportlab canvas; one call per page."""

    def __init__(self, fonts, styles, min_font_size=6.0, line_width=0.6):
        self.fonts = fonts
        self.styles = styles
        self.min_font_size = float(min_font_size)
        self.line_width = float(line_width)

    def paint(self, canvas, layout: PageLayout):
        canvas.saveState()
        canvas.setLineJoin(1)
        canvas.setStrokeColor(colors.black)
        # fills go first so borders and text stay on top
        for item in layout.items:
            if isinstance(item, BoxItem) and item.fill:
                self._fill_box(canvas, item)
        for item in layout.items:
            if isinstance(item, BoxItem):
                self._stroke_box(canvas, item)
            elif isinstance(item, CheckItem):
                self._checkbox(canvas, item)
            elif isinstance(item, TextItem):
                self._text(canvas, item)
            elif isinstance(item, ParagraphItem):
                self._paragraph(canvas, item)
        canvas.restoreState()

    def _fill_box(self, canvas, item: BoxItem):
        canvas.setFillColor(colors.HexColor(item.fill))
        canvas.rect(item.x, item.y, item.w, item.h, stroke=0, fill=1)
        canvas.setFillColor(colors.black)

    def _stroke_box(self, canvas, item: BoxItem):
        canvas.setLineWidth(item.width)
        canvas.rect(item.x, item.y, item.w, item.h, stroke=1, fill=0)

    def _checkbox(self, canvas, item: CheckItem):
        canvas.setLineWidth(self.line_width)
        canvas.rect(item.x, item.y, item.size, item.size, stroke=1, fill=0)
        if item.checked:
            s = item.size
            path = canvas.beginPath()
            path.moveTo(item.x + s * 0.18, item.y + s * 0.52)
            path.lineTo(item.x + s * 0.42, item.y + s * 0.22)
            path.lineTo(item.x + s * 0.84, item.y + s * 0.84)
            canvas.setLineWidth(self.line_width * 2)
            canvas.drawPath(path, stroke=1, fill=0)
            canvas.setLineWidth(self.line_width)

    def _text(self, canvas, item: TextItem):
        canvas.setFillColor(colors.HexColor(item.color))
        canvas.setFont(self.fonts.font_for(item.font), item.size)
        if item.align == 'center':
            canvas.drawCentredString(item.x, item.y, item.text)
        elif item.align == 'right':
            canvas.drawRightString(item.x, item.y, item.text)
        else:
            canvas.drawString(item.x, item.y, item.text)
        canvas.setFillColor(colors.black)

    def _paragraph(self, canvas, item: ParagraphItem):
        if not item.markup:
            return
        para, h = shrink_paragraph_to_fit(item.markup, self.styles[item.style], item.w, item.h,
                                          min_font=self.min_font_size)
        if item.valign == 'middle' and h < item.h:
            y = item.y - (item.h + h) / 2.0
        else:
            y = item.y - h
        # clip overflow at the minimum size to the box
        canvas.saveState()
        clip = canvas.beginPath()
        clip.rect(item.x, item.y - item.h, item.w, item.h)
        canvas.clipPath(clip, stroke=0, fill=0)
        para.drawOn(canvas, item.x, y)
        canvas.restoreState()
