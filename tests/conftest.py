import io

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

# PNG signature plus filler; never decoded
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture()
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with a known problem on it."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "1. Solve x + 2 = 5")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with one problem per page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "1. Solve x + 2 = 5")
    c.showPage()
    c.drawString(72, 720, "2. Factor x^2 - 1")
    c.save()
    return buf.getvalue()
