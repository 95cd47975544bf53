import uuid
from collections.abc import Iterable
from pathlib import Path

from skidscan.intake.exceptions import UnsupportedMediaTypeError
from skidscan.intake.file_loader import FileLoader, is_supported_mime_type
from skidscan.logging.logger import Log
from skidscan.pdf.base import BasePdfRasterizer
from skidscan.pdf.exceptions import PdfRasterizeError
from skidscan.store.models import PDF_MIME_TYPE, FileItem, ItemSource, ItemStatus
from skidscan.store.previews import PreviewHandles
from skidscan.store.store import ScanStore


class ItemIntake:
    """Turns uploaded files into queued FileItems.

    Preview handles are created here and handed to the store, which releases
    them when items are removed or cleared. With a rasterizer, PDFs are split
    into one PNG item per page before they are queued.
    """

    def __init__(
        self,
        store: ScanStore,
        previews: PreviewHandles,
        *,
        file_loader: FileLoader | None = None,
        rasterizer: BasePdfRasterizer | None = None,
        rasterize_dpi: int = 144,
    ) -> None:
        self._store = store
        self._previews = previews
        self._file_loader = file_loader or FileLoader()
        self._rasterizer = rasterizer
        self._rasterize_dpi = rasterize_dpi

    def append_files(
        self,
        paths: Iterable[Path],
        source: ItemSource = ItemSource.UPLOAD,
    ) -> list[FileItem]:
        added: list[FileItem] = []
        for path in paths:
            data, mime_type = self._file_loader.load(path)
            added.extend(self.append_bytes(data, mime_type, path.name, source))
        return added

    def append_bytes(
        self,
        data: bytes,
        mime_type: str,
        name: str,
        source: ItemSource = ItemSource.UPLOAD,
    ) -> list[FileItem]:
        if not is_supported_mime_type(mime_type):
            raise UnsupportedMediaTypeError(f"'{name}' has unsupported type {mime_type}")
        if mime_type == PDF_MIME_TYPE and self._rasterizer is not None:
            return self._append_rasterized(self._rasterizer, data, name, source)
        item = self._new_item(data, mime_type, name, source, ItemStatus.PENDING)
        self._store.add_items([item])
        Log.info(f"Queued {name} ({mime_type}, {len(data)} bytes)")
        return [item]

    def remove_item(self, item_id: str) -> None:
        self._store.remove_item(item_id)

    def clear_all(self) -> None:
        self._store.clear_all()

    def total_bytes(self) -> int:
        return self._store.total_bytes()

    def _append_rasterized(
        self,
        rasterizer: BasePdfRasterizer,
        data: bytes,
        name: str,
        source: ItemSource,
    ) -> list[FileItem]:
        placeholder = self._new_item(data, PDF_MIME_TYPE, name, source, ItemStatus.RASTERIZING)
        self._store.add_items([placeholder])
        try:
            pages = rasterizer.rasterize(data, self._rasterize_dpi)
        except PdfRasterizeError as exc:
            Log.warning(f"Rasterizing {name} failed, queueing the PDF as is: {exc}")
            return [self._store.update_item_status(placeholder.id, ItemStatus.PENDING)]

        stem = Path(name).stem
        page_items = [
            self._new_item(png, "image/png", f"{stem}-p{number}.png", source, ItemStatus.PENDING)
            for number, png in enumerate(pages, start=1)
        ]
        self._store.remove_item(placeholder.id)
        self._store.add_items(page_items)
        Log.info(f"Rasterized {name} into {len(page_items)} page image(s)")
        return page_items

    def _new_item(
        self,
        data: bytes,
        mime_type: str,
        name: str,
        source: ItemSource,
        status: ItemStatus,
    ) -> FileItem:
        return FileItem(
            id=uuid.uuid4().hex,
            data=data,
            mime_type=mime_type,
            name=name,
            url=self._previews.create(data, mime_type),
            source=source,
            status=status,
        )
