"""PDF text extraction backed by PyMuPDF."""
from typing import Dict, Any

import fitz  # PyMuPDF

from flashgen.utils.logger import get_logger

LOG = get_logger()


class PDFExtractionError(Exception):
    pass


def extract_pdf_text(file_path: str) -> Dict[str, Any]:
    """Return {'text', 'pages'} for the PDF at file_path."""
    try:
        parts = []
        with fitz.open(file_path) as doc:
            pages = doc.page_count
            for page in doc:
                parts.append(page.get_text('text') or '')
    except Exception as e:
        LOG.warning('pdf_extraction_failed', extra={'path': file_path, 'error': str(e)})
        raise PDFExtractionError(str(e)) from e
    text = '\n'.join(parts)
    LOG.debug('pdf_extracted', extra={'pages': pages, 'text_length': len(text)})
    return {'text': text, 'pages': pages}
