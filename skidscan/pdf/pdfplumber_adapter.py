import io

import pdfplumber

from skidscan.pdf.base import BasePdfRasterizer
from skidscan.pdf.exceptions import PdfRasterizeError


class PdfPlumberRasterizer(BasePdfRasterizer):
    """Renders PDF pages using pdfplumber."""

    def rasterize(self, pdf_bytes: bytes, dpi: int = 144) -> list[bytes]:
        try:
            pages: list[bytes] = []
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                for page in pdf.pages:
                    buf = io.BytesIO()
                    page.to_image(resolution=dpi).original.save(buf, format="PNG")
                    pages.append(buf.getvalue())
        except Exception as exc:
            raise PdfRasterizeError(f"pdfplumber rasterization failed: {exc}") from exc
        if not pages:
            raise PdfRasterizeError("PDF has no pages")
        return pages
