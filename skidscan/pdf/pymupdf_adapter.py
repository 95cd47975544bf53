import pymupdf

from skidscan.pdf.base import BasePdfRasterizer
from skidscan.pdf.exceptions import PdfRasterizeError


class PyMuPdfRasterizer(BasePdfRasterizer):
    """Renders PDF pages using PyMuPDF."""

    def rasterize(self, pdf_bytes: bytes, dpi: int = 144) -> list[bytes]:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                pages = [page.get_pixmap(dpi=dpi).tobytes("png") for page in doc]
        except Exception as exc:
            raise PdfRasterizeError(f"pymupdf rasterization failed: {exc}") from exc
        if not pages:
            raise PdfRasterizeError("PDF has no pages")
        return pages
