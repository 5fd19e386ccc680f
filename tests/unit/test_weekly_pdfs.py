"""Unit tests for weekly PDF and product image controllers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import pytest
import respx

from catalogcache.errors import CatalogError, ErrorCode
from catalogcache.events import UpdateChannel
from catalogcache.policy import PRODUCT_IMAGES, WEEKLY_PDFS
from catalogcache.resources import (
    ProductImagesController,
    ResourceState,
    WeeklyPdfsController,
)
from catalogcache.resources.weekly_pdfs import MAX_PDF_BYTES, validate_pdf_upload

if TYPE_CHECKING:
    from catalogcache.origin import OriginClient
    from catalogcache.store import CacheStore

ORIGIN = "http://origin.test/api"
PDFS_URL = f"{ORIGIN}/weekly-pdfs"
PDF_BYTES = b"%PDF-1.7\n..."


@pytest.fixture()
def pdfs(store: CacheStore, origin: OriginClient) -> WeeklyPdfsController:
    return WeeklyPdfsController(store, origin, UpdateChannel("weekly_pdfs"))


class TestValidatePdfUpload:
    def test_accepts_pdf(self) -> None:
        assert validate_pdf_upload("  Folheto  ", PDF_BYTES, "folheto.PDF") == "Folheto"

    @pytest.mark.parametrize(
        ("name", "content", "filename", "message"),
        [
            ("", PDF_BYTES, "a.pdf", "A name is required"),
            ("Flyer", PDF_BYTES, "a.png", "Only PDF files are allowed"),
            ("Flyer", b"\x89PNG", "a.pdf", "Only PDF files are allowed"),
            ("Flyer", b"%PDF" + b"0" * MAX_PDF_BYTES, "a.pdf", "PDF too large (maximum 10MB)"),
        ],
    )
    def test_rejects(self, name: str, content: bytes, filename: str, message: str) -> None:
        with pytest.raises(CatalogError) as exc_info:
            validate_pdf_upload(name, content, filename)
        assert exc_info.value.code == ErrorCode.INVALID_UPLOAD
        assert exc_info.value.message == message


class TestWeeklyPdfs:
    async def test_latest_pdf(self, pdfs: WeeklyPdfsController, make_pdf) -> None:
        with respx.mock:
            respx.get(PDFS_URL).mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "success": True,
                        "data": [
                            make_pdf(id="old", upload_date="2024-03-07T10:00:00Z"),
                            make_pdf(id="new", upload_date="2024-03-14T10:00:00Z"),
                        ],
                    },
                )
            )
            await pdfs.load()

        assert pdfs.state is ResourceState.READY
        assert pdfs.latest_pdf is not None
        assert pdfs.latest_pdf.id == "new"

    async def test_latest_pdf_empty(self, pdfs: WeeklyPdfsController) -> None:
        assert pdfs.latest_pdf is None

    async def test_add_pdf_prepends_and_caches(
        self, pdfs: WeeklyPdfsController, store: CacheStore, make_pdf
    ) -> None:
        await store.set(WEEKLY_PDFS, [make_pdf(id="p1")])
        await pdfs.load()
        with respx.mock:
            route = respx.post(PDFS_URL).mock(
                return_value=httpx.Response(200, json={"success": True, "data": make_pdf(id="p2")})
            )
            created = await pdfs.add_pdf("Folheto", PDF_BYTES, "folheto.pdf")

        assert created is not None
        assert created.id == "p2"
        assert b'filename="folheto.pdf"' in route.calls.last.request.read()
        assert [pdf.id for pdf in pdfs.data] == ["p2", "p1"]
        cached = await store.get(WEEKLY_PDFS)
        assert cached is not None
        assert [pdf["id"] for pdf in cached.payload] == ["p2", "p1"]
        assert not pdfs.saving

    async def test_add_pdf_failure_sets_error(
        self, pdfs: WeeklyPdfsController, store: CacheStore, make_pdf
    ) -> None:
        await store.set(WEEKLY_PDFS, [make_pdf(id="p1")])
        await pdfs.load()
        with respx.mock:
            respx.post(PDFS_URL).mock(
                return_value=httpx.Response(413, json={"success": False, "error": "Too large"})
            )
            created = await pdfs.add_pdf("Folheto", PDF_BYTES, "folheto.pdf")

        assert created is None
        assert pdfs.error == "Could not upload PDF: Too large"
        assert [pdf.id for pdf in pdfs.data] == ["p1"]

    async def test_invalid_upload_never_reaches_origin(self, pdfs: WeeklyPdfsController) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.post(PDFS_URL).mock(return_value=httpx.Response(200))
            with pytest.raises(CatalogError):
                await pdfs.add_pdf("Folheto", b"not a pdf", "folheto.pdf")
            assert not route.called

    async def test_delete_pdf(
        self, pdfs: WeeklyPdfsController, store: CacheStore, make_pdf
    ) -> None:
        await store.set(WEEKLY_PDFS, [make_pdf(id="p1"), make_pdf(id="p2")])
        await pdfs.load()
        with respx.mock:
            respx.delete(f"{PDFS_URL}/p1").mock(
                return_value=httpx.Response(200, json={"success": True})
            )
            assert await pdfs.delete_pdf("p1") is True

        assert [pdf.id for pdf in pdfs.data] == ["p2"]


class TestProductImages:
    async def test_load_and_find(self, store: CacheStore, origin: OriginClient) -> None:
        images = ProductImagesController(store, origin, UpdateChannel("product_images"))
        record: dict[str, Any] = {
            "url": "https://cdn.test/products/pen.jpg",
            "pathname": "products/pen.jpg",
            "size": 2048,
            "uploadedAt": "2024-03-01T12:00:00Z",
        }
        with respx.mock:
            respx.get(f"{ORIGIN}/images").mock(
                return_value=httpx.Response(200, json={"success": True, "data": [record]})
            )
            await images.load()

        found = images.find("https://cdn.test/products/pen.jpg")
        assert found is not None
        assert found.size == 2048
        assert images.find("https://cdn.test/other.jpg") is None
        assert await store.read_envelope(PRODUCT_IMAGES.key) is not None
