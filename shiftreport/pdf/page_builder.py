# shiftreport/pdf/page_builder.py
from math import ceil

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm

from shiftreport.models import WORK_TYPE_LABELS, Report
from shiftreport.utils import format_wareki_datetime

from .layout import BoxItem, CheckItem, PageLayout, ParagraphItem, TextItem
from .markup import sanitize_for_paragraph

TITLE_H = 28.0
ROW_H = 26.0
HEADER_H = 18.0
TIME_ROW1_H = 24.0
TIME_ROW2_H = 40.0
WORK_ROW_H = 18.0
GUARD_ROW_H = 28.0
NOTES_ROW_H = 22.0
NOTES_DETAIL_H = 56.0
CERT_ROW_H = 24.0
FOOTER_H = 40.0
CHECK_SIZE = 9.0
PAD = 4.0

CERTIFICATIONS = (
    ('traffic_guide', '交通誘導検定合格者配置', 'traffic_guide_assigned', 'traffic_guide_assignee_name'),
    ('misc_guard', '雑踏警備検定合格者配置', 'misc_guard_assigned', 'misc_guard_assignee_name'),
)


class ReportPageBuilder:
    """
    Lays out one report on the fixed A4 form. Every block has a fixed height,
    so the position of each label never depends on the report's content.
    """

    def __init__(self, config):
        self.config = config
        self.page_w, self.page_h = A4
        self.margin = float(getattr(config, 'PAGE_MARGIN_MM', 10.0)) * mm
        self.left = self.margin
        self.right = self.page_w - self.margin
        self.usable_w = self.right - self.left
        self.gap = float(getattr(config, 'BLOCK_GAP', 6.0))
        self.line_width = float(getattr(config, 'LINE_WIDTH', 0.6))
        self.header_fill = getattr(config, 'LINE_GRAY_HEX', '#E0E0E0')
        self.title_size = float(getattr(config, 'TITLE_FONT_SIZE', 16.0))
        self.label_size = float(getattr(config, 'LABEL_FONT_SIZE', 9.5))
        self.small_size = float(getattr(config, 'SMALL_FONT_SIZE', 7.0))
        self.footer_size = float(getattr(config, 'FOOTER_FONT_SIZE', 8.5))
        self.guard_slots = int(getattr(config, 'GUARD_SLOTS', 6))
        self.guard_columns = max(1, int(getattr(config, 'GUARD_COLUMNS', 2)))

    # ---------- primitives ----------

    def _box(self, items, x, top, w, h, fill=''):
        items.append(BoxItem(x=x, y=top - h, w=w, h=h, fill=fill, width=self.line_width))

    def _baseline(self, top, h, size):
        return top - h / 2.0 - size * 0.35

    def _label(self, items, x, top, h, text, size=None, font='bold', align='left'):
        size = size or self.label_size
        items.append(TextItem(x=x, y=self._baseline(top, h, size), text=text, font=font, size=size, align=align))

    def _para(self, items, key, x, top, w, h, text, style='value', valign='middle'):
        items.append(ParagraphItem(
            key=key, x=x + PAD, y=top - PAD / 2.0, w=w - 2 * PAD, h=h - PAD,
            markup=sanitize_for_paragraph(text), style=style, valign=valign,
        ))

    def _check(self, items, key, x, top, h, checked, caption):
        y = top - h / 2.0 - CHECK_SIZE / 2.0
        items.append(CheckItem(key=key, x=x, y=y, size=CHECK_SIZE, checked=bool(checked)))
        self._label(items, x + CHECK_SIZE + 4, top, h, caption, font='regular')

    def _header_row(self, items, top, cells):
        """cells: [(x, w, text, align)] drawn on a gray band."""
        for x, w, text, align in cells:
            self._box(items, x, top, w, HEADER_H, fill=self.header_fill)
            tx = x + w / 2.0 if align == 'center' else x + PAD
            self._label(items, tx, top, HEADER_H, text, align=align)
        return top - HEADER_H

    # ---------- blocks ----------

    def _title(self, items, top):
        title = getattr(self.config, 'REPORT_TITLE', '警備報告書（当社控）')
        items.append(TextItem(x=self.page_w / 2.0, y=top - TITLE_H + 8, text=title, font='bold',
                              size=self.title_size, align='center'))
        return top - TITLE_H

    def _contract_block(self, items, top, report, signer_name):
        c0, c1 = self.usable_w * 0.20, self.usable_w * 0.55
        c2 = self.usable_w - c0 - c1
        x1, x2 = self.left + c0, self.left + c0 + c1

        for row, (label, key, value) in enumerate((
            ('契約先', 'contract_name', report.contract_name),
            ('警備場所', 'guard_location', report.guard_location),
        )):
            row_top = top - row * ROW_H
            self._box(items, self.left, row_top, c0, ROW_H)
            self._label(items, self.left + PAD, row_top, ROW_H, label)
            self._box(items, x1, row_top, c1, ROW_H)
            self._para(items, key, x1, row_top, c1, ROW_H, value)

        # signature cell spans both rows
        self._box(items, x2, top, c2, ROW_H * 2)
        self._label(items, x2 + c2 / 2.0, top, 20, 'ご署名', align='center')
        self._para(items, 'signer_name', x2, top - 20, c2, ROW_H * 2 - 20, signer_name, style='value_center')
        return top - ROW_H * 2

    def _work_time_block(self, items, top, report):
        lw = self.usable_w * 0.75
        rw = self.usable_w - lw
        rx = self.left + lw
        y = self._header_row(items, top, [(self.left, lw, '勤務時間', 'left'), (rx, rw, '天気', 'center')])

        for label, value, h in (('（自）', report.work_date_from, TIME_ROW1_H),
                                ('（至）', report.work_date_to, TIME_ROW2_H)):
            self._box(items, self.left, y, lw, h)
            self._label(items, self.left + PAD, y, h, label)
            self._label(items, self.left + PAD + 32, y, h, format_wareki_datetime(value), font='regular')
            if label == '（自）':
                self._box(items, rx, y, rw, h)
                self._para(items, 'weather', rx, y, rw, h, report.weather, style='value_center')
            else:
                half = h / 2.0
                for i, (sub_label, key, sub_value) in enumerate((('休憩', 'break_time', report.break_time),
                                                                 ('残業', 'overtime_time', report.overtime_time))):
                    sub_top = y - i * half
                    self._box(items, rx, sub_top, rw, half)
                    self._label(items, rx + PAD, sub_top, half, sub_label)
                    self._para(items, key, rx + 28, sub_top, rw - 28, half, sub_value)
            y -= h
        return y

    def _work_type_block(self, items, top, report):
        y = self._header_row(items, top, [(self.left, self.usable_w, '業　　務', 'left')])
        for i, label in enumerate(WORK_TYPE_LABELS):
            self._box(items, self.left, y, self.usable_w, WORK_ROW_H)
            self._check(items, f'work_type.{i}', self.left + PAD + 2, y, WORK_ROW_H,
                        label == report.work_type, label)
            y -= WORK_ROW_H
        return y

    def _guards_block(self, items, top, report):
        y = self._header_row(items, top, [(self.left, self.usable_w, '担当警備員', 'left')])
        names = report.guard_names()[:self.guard_slots]
        col_w = self.usable_w / self.guard_columns
        rows = int(ceil(self.guard_slots / float(self.guard_columns)))

        for slot in range(self.guard_slots):
            r, c = divmod(slot, self.guard_columns)
            x = self.left + c * col_w
            cell_top = y - r * GUARD_ROW_H
            self._box(items, x, cell_top, col_w, GUARD_ROW_H)
            items.append(TextItem(x=x + PAD, y=cell_top - self.small_size - 2, text=str(slot + 1),
                                  size=self.small_size, color='#666666'))
            name = names[slot] if slot < len(names) else ''
            self._para(items, f'guard.{slot + 1}', x + 8, cell_top, col_w - 8, GUARD_ROW_H, name)
        return y - rows * GUARD_ROW_H

    def _special_notes_block(self, items, top, report):
        c0 = self.usable_w * 0.25
        has_notes = report.has_special_notes
        self._box(items, self.left, top, c0, NOTES_ROW_H)
        self._label(items, self.left + PAD, top, NOTES_ROW_H, '特記事項')
        self._box(items, self.left + c0, top, self.usable_w - c0, NOTES_ROW_H)
        x = self.left + c0 + PAD + 2
        self._check(items, 'special_notes.yes', x, top, NOTES_ROW_H, has_notes, 'あり')
        self._check(items, 'special_notes.no', x + 50, top, NOTES_ROW_H, not has_notes, 'なし')

        # the detail area keeps its height when hidden
        y = top - NOTES_ROW_H
        if has_notes:
            self._box(items, self.left, y, self.usable_w, NOTES_DETAIL_H)
            self._label(items, self.left + PAD, y, 16, '特記事項の内容')
            self._para(items, 'special_notes_detail', self.left, y - 14, self.usable_w, NOTES_DETAIL_H - 14,
                       report.special_notes_detail, valign='top')
        return y - NOTES_DETAIL_H

    def _certification_block(self, items, top, report):
        c0, c1 = self.usable_w * 0.40, self.usable_w * 0.30
        c2 = self.usable_w - c0 - c1
        y = top
        for key, label, flag_field, name_field in CERTIFICATIONS:
            assigned = bool(getattr(report, flag_field))
            self._box(items, self.left, y, c0, CERT_ROW_H)
            self._label(items, self.left + PAD, y, CERT_ROW_H, label)
            self._box(items, self.left + c0, y, c1, CERT_ROW_H)
            x = self.left + c0 + PAD + 2
            self._check(items, f'cert.{key}.yes', x, y, CERT_ROW_H, assigned, 'あり')
            self._check(items, f'cert.{key}.no', x + 50, y, CERT_ROW_H, not assigned, 'なし')
            self._box(items, self.left + c0 + c1, y, c2, CERT_ROW_H)
            name = getattr(report, name_field)
            if assigned and name:
                self._para(items, f'cert.{key}.name', self.left + c0 + c1, y, c2, CERT_ROW_H,
                           f'検定合格者氏名: {name}')
            y -= CERT_ROW_H
        return y

    def _remarks_block(self, items, top, report):
        y = self._header_row(items, top, [(self.left, self.usable_w, '備考', 'left')])
        bottom = self.margin + FOOTER_H + self.gap
        h = max(HEADER_H, y - bottom)
        self._box(items, self.left, y, self.usable_w, h)
        self._para(items, 'remarks', self.left, y - 2, self.usable_w, h - 2, report.remarks, valign='top')
        return y - h

    def _footer(self, items):
        lines = (
            (getattr(self.config, 'ORG_NAME', ''), 'bold'),
            (getattr(self.config, 'ORG_ADDRESS', ''), 'regular'),
            (getattr(self.config, 'ORG_CONTACT', ''), 'regular'),
        )
        step = FOOTER_H / len(lines)
        for i, (text, font) in enumerate(lines):
            y = self.margin + FOOTER_H - (i + 1) * step + 3
            items.append(TextItem(x=self.left, y=y, text=text, font=font, size=self.footer_size))

    # ---------- page ----------

    def build(self, report: Report, signer_name: str) -> PageLayout:
        items = []
        y = self.page_h - self.margin
        y = self._title(items, y)
        y = self._contract_block(items, y, report, signer_name) - self.gap
        y = self._work_time_block(items, y, report) - self.gap
        y = self._work_type_block(items, y, report) - self.gap
        y = self._guards_block(items, y, report) - self.gap
        y = self._special_notes_block(items, y, report) - self.gap
        y = self._certification_block(items, y, report) - self.gap
        self._remarks_block(items, y, report)
        self._footer(items)
        return PageLayout(width=self.page_w, height=self.page_h, items=tuple(items))
