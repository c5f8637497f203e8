"""
Tests for ArchiveBundler.
"""

import io
import zipfile

from invoice_batch.services.archive import ArchiveBundler, ArchiveEntry

from tests.factories import SHOP


def _names(storage, artifact) -> list[str]:
    with zipfile.ZipFile(io.BytesIO(storage.read(SHOP, artifact.key))) as archive:
        return archive.namelist()


class TestArchiveBundler:
    def test_entries_keep_their_order(self, storage):
        b = storage.save(SHOP, "b.pdf", b"B")
        a = storage.save(SHOP, "a.pdf", b"A")

        result = ArchiveBundler(storage).bundle(
            SHOP,
            [ArchiveEntry(b.key, "invoice-2.pdf"), ArchiveEntry(a.key, "invoice-1.pdf")],
            "bundle.zip",
        )

        assert _names(storage, result.artifact) == ["invoice-2.pdf", "invoice-1.pdf"]
        assert result.included == (b.key, a.key)
        assert result.artifact.key.endswith("-bundle.zip")

    def test_missing_sources_are_skipped(self, storage, captured_logs):
        a = storage.save(SHOP, "a.pdf", b"A")
        gone = f"{SHOP}/1-gone.pdf"

        result = ArchiveBundler(storage).bundle(
            SHOP, [ArchiveEntry(gone, "gone.pdf"), ArchiveEntry(a.key, "a.pdf")], "bundle.zip",
        )

        assert result.missing == (gone,)
        assert _names(storage, result.artifact) == ["a.pdf"]
        assert any(r["message"] == "archive_source_missing" for r in captured_logs())

    def test_duplicate_names_get_a_suffix(self, storage):
        keys = [storage.save(SHOP, "x.pdf", data).key for data in (b"1", b"2", b"3")]

        result = ArchiveBundler(storage).bundle(
            SHOP, [ArchiveEntry(key, "invoice.pdf") for key in keys], "bundle.zip",
        )

        assert _names(storage, result.artifact) == ["invoice.pdf", "invoice-2.pdf", "invoice-3.pdf"]

    def test_contents_round_trip(self, storage):
        a = storage.save(SHOP, "a.pdf", b"%PDF-1.4 first")

        result = ArchiveBundler(storage).bundle(SHOP, [ArchiveEntry(a.key, "a.pdf")], "bundle.zip")

        with zipfile.ZipFile(io.BytesIO(storage.read(SHOP, result.artifact.key))) as archive:
            assert archive.read("a.pdf") == b"%PDF-1.4 first"
            assert archive.getinfo("a.pdf").compress_type == zipfile.ZIP_DEFLATED
