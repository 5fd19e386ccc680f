from __future__ import annotations

import structlog
from pydantic import ValidationError

from catalogcache.errors import CatalogError, ErrorCode
from catalogcache.models.catalog import WeeklyPdf
from catalogcache.policy import WEEKLY_PDFS
from catalogcache.resources.base import ResourceController

log = structlog.get_logger()

MAX_PDF_BYTES = 10 * 1024 * 1024
_PDF_MAGIC = b"%PDF"


def validate_pdf_upload(name: str, content: bytes, filename: str) -> str:
    """Check an upload before it reaches the origin. Returns the stripped name."""
    name = name.strip()
    if not name:
        raise CatalogError(ErrorCode.INVALID_UPLOAD, "A name is required")
    if not filename.lower().endswith(".pdf") or not content.startswith(_PDF_MAGIC):
        raise CatalogError(ErrorCode.INVALID_UPLOAD, "Only PDF files are allowed")
    if len(content) > MAX_PDF_BYTES:
        raise CatalogError(ErrorCode.INVALID_UPLOAD, "PDF too large (maximum 10MB)")
    return name


class WeeklyPdfsController(ResourceController[WeeklyPdf]):
    """Weekly PDF listings. Entries are created by upload and never edited."""

    policy = WEEKLY_PDFS
    resource = "weekly-pdfs"
    item_type = WeeklyPdf

    @property
    def latest_pdf(self) -> WeeklyPdf | None:
        return max(self.data, key=lambda pdf: pdf.upload_date, default=None)

    def _find(self, pdf_id: str) -> WeeklyPdf:
        for pdf in self.data:
            if pdf.id == pdf_id:
                return pdf
        raise CatalogError(ErrorCode.NOT_FOUND, f"PDF {pdf_id!r} not found")

    async def add_pdf(self, name: str, content: bytes, filename: str = "weekly.pdf") -> WeeklyPdf | None:
        """Upload a PDF. Not optimistic: the origin assigns id and url.

        Returns the created record, or ``None`` if the upload failed.
        """
        name = validate_pdf_upload(name, content, filename)
        self.saving = True
        self.error = None
        try:
            created = await self._origin.upload(
                self.resource,
                filename=filename,
                content=content,
                content_type="application/pdf",
                fields={"name": name},
            )
            try:
                pdf = WeeklyPdf.model_validate(created)
            except ValidationError as exc:
                raise CatalogError(
                    ErrorCode.INVALID_PAYLOAD, "Origin returned a malformed PDF record"
                ) from exc
        except CatalogError as exc:
            self.error = f"Could not upload PDF: {exc.message}"
            return None
        finally:
            self.saving = False

        await self._commit_local([pdf, *self.data])
        log.info("weekly_pdf_added", pdf_id=pdf.id, name=pdf.name)
        return pdf

    async def delete_pdf(self, pdf_id: str) -> bool:
        self._find(pdf_id)

        def change(items: list[WeeklyPdf]) -> list[WeeklyPdf]:
            return [item for item in items if item.id != pdf_id]

        async def write(_: list[WeeklyPdf]) -> None:
            await self._origin.delete_item(self.resource, pdf_id)

        return await self._mutate("delete_pdf", change, write)
