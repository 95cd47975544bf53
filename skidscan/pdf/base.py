from abc import ABC, abstractmethod


class BasePdfRasterizer(ABC):
    """Contract for all PDF rasterization adapters."""

    @abstractmethod
    def rasterize(self, pdf_bytes: bytes, dpi: int = 144) -> list[bytes]:
        """Render every page of a PDF to a PNG image.

        Args:
            pdf_bytes: Raw PDF file content.
            dpi: Output resolution.

        Returns:
            One PNG payload per page, in page order.

        Raises:
            PdfRasterizeError: if rendering fails for any reason.
        """
