from .pdf_service import PDFService, RenderedPDF

__all__ = ['PDFService', 'RenderedPDF']
