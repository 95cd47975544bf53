import mimetypes
from pathlib import Path

from skidscan.intake.exceptions import FileReadError, UnsupportedMediaTypeError
from skidscan.store.models import PDF_MIME_TYPE


def is_supported_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("image/") or mime_type == PDF_MIME_TYPE


class FileLoader:
    """Reads an uploaded file and resolves its declared mime type."""

    def load(self, path: Path) -> tuple[bytes, str]:
        """Read file bytes and mime type.

        Raises:
            UnsupportedMediaTypeError: if the file is not an image or a PDF.
            FileReadError: if the file cannot be read.
        """
        mime_type, _ = mimetypes.guess_type(path.name)
        if mime_type is None or not is_supported_mime_type(mime_type):
            raise UnsupportedMediaTypeError(
                f"'{path.name}' is not an image or PDF ({mime_type or 'unknown type'})"
            )
        try:
            return path.read_bytes(), mime_type
        except OSError as exc:
            raise FileReadError(f"Failed to read {path}: {exc}") from exc
