# shiftreport/pdf/pdf_service.py
import io
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas as rl_canvas

from shiftreport.models import Report
from shiftreport.utils import format_date_for_file, format_time_for_file, now_local

from .font_manager import FontManager
from .layout import PageLayout
from .page_builder import ReportPageBuilder
from .painter import LayoutPainter
from .styles_builder import make_styles

logger = logging.getLogger(__name__)

NameLookup = Union[Mapping[str, str], Callable[[str], Optional[str]]]


class RenderedPDF(NamedTuple):
    content: bytes
    pages: int
    filename: str
    layouts: Tuple[PageLayout, ...]


class PDFService:
    def __init__(self, config):
        self.config = config
        self.org_name = getattr(config, 'ORG_NAME', '')
        self.unknown_name = getattr(config, 'UNKNOWN_USER_NAME', '不明')

        fm = FontManager(config=config)
        self.fonts = fm
        self.styles = make_styles(config, fm.FONT_REGULAR)
        self.builder = ReportPageBuilder(config)
        self.painter = LayoutPainter(
            fm, self.styles,
            min_font_size=getattr(config, 'MIN_FONT_SIZE', 6.0),
            line_width=getattr(config, 'LINE_WIDTH', 0.6),
        )

    def build_layout(self, report: Report, signer_name: str) -> PageLayout:
        return self.builder.build(report, signer_name or '')

    def _paint_document(self, layouts: List[PageLayout]) -> bytes:
        pdf_buffer = io.BytesIO()
        # invariant: no creation date or random document id, so output is repeatable
        c = rl_canvas.Canvas(pdf_buffer, pagesize=A4, invariant=1)
        c.setTitle(getattr(self.config, 'REPORT_TITLE', ''))
        c.setAuthor(self.org_name)
        for layout in layouts:
            self.painter.paint(c, layout)
            c.showPage()
        c.save()
        return pdf_buffer.getvalue()

    def render_one(self, report: Report, signer_name: str) -> RenderedPDF:
        layout = self.build_layout(report, signer_name)
        content = self._paint_document([layout])
        return RenderedPDF(content=content, pages=1, filename=self.get_filename(report), layouts=(layout,))

    def render_batch(self, reports: Iterable[Report], name_lookup: NameLookup,
                     export_date: Optional[datetime] = None) -> RenderedPDF:
        """
        One page per report in the given order. Pages are laid out one at a time;
        if any report fails to render the whole export fails.
        """
        reports = list(reports)
        if not reports:
            raise ValueError("render_batch needs at least one report")
        lookup = name_lookup.get if isinstance(name_lookup, Mapping) else name_lookup

        layouts = []
        for index, report in enumerate(reports):
            signer = lookup(report.user_id) or self.unknown_name
            try:
                layouts.append(self.build_layout(report, signer))
            except Exception:
                logger.error("Batch export aborted at page %d (report %s)", index + 1, report.id)
                raise

        content = self._paint_document(layouts)
        logger.info("Rendered batch export with %d pages", len(layouts))
        filename = self.get_batch_filename(export_date or now_local(getattr(self.config, 'TIMEZONE', 'Asia/Tokyo')))
        return RenderedPDF(content=content, pages=len(layouts), filename=filename, layouts=tuple(layouts))

    def get_filename(self, report: Report) -> str:
        created = report.created_at
        return f"{self.org_name}_{format_date_for_file(created)}_{format_time_for_file(created)}.pdf"

    def get_batch_filename(self, export_date: datetime) -> str:
        label = getattr(self.config, 'BATCH_FILE_LABEL', '警備報告書一括')
        return f"{self.org_name}_{label}_{format_date_for_file(export_date)}.pdf"
