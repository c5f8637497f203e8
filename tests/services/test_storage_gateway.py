"""
Tests for FileStorageGateway -- shop scoping, key shape, pruning.
"""

import io
import os
from datetime import timedelta

import pytest

from invoice_kernel.exceptions import ArtifactNotFoundError, InvalidShopError, StorageError
from invoice_kernel.services.storage_gateway import (
    download_url,
    sanitize_component,
    shop_directory,
)

from tests.factories import FIXED_NOW, OTHER_SHOP, SHOP

_STAMP = int(FIXED_NOW.timestamp() * 1000)


class _BrokenStream(io.RawIOBase):
    def readable(self):
        return True

    def readinto(self, buffer):
        raise OSError("disk went away")


class TestSanitize:
    @pytest.mark.parametrize("raw,expected", [
        ("demo-store.myshopify.com", "demo-store.myshopify.com"),
        ("a/b c", "a-b-c"),
        ("..", "--"),
        (".", "-"),
        ("INV#1001", "INV-1001"),
    ])
    def test_sanitize_component(self, raw, expected):
        assert sanitize_component(raw) == expected

    def test_safe_shop_is_its_own_directory(self):
        assert shop_directory(SHOP) == SHOP

    def test_download_url_quotes_key_and_shop(self):
        url = download_url(f"{SHOP}/1-invoice.pdf", shop=SHOP)

        assert url == (
            "/api/download/demo-store.myshopify.com%2F1-invoice.pdf"
            "?shop=demo-store.myshopify.com"
        )


class TestSaveAndRead:
    def test_key_shape_and_round_trip(self, storage):
        artifact = storage.save(SHOP, "invoice-INV-1001.pdf", b"%PDF-1.4 body")

        assert artifact.key == f"{SHOP}/{_STAMP}-invoice-INV-1001.pdf"
        assert artifact.filename == f"{_STAMP}-invoice-INV-1001.pdf"
        assert artifact.size == 13
        assert storage.read(SHOP, artifact.key) == b"%PDF-1.4 body"
        assert storage.exists(SHOP, artifact.key)

    def test_same_millisecond_gets_a_fresh_key(self, storage):
        first = storage.save(SHOP, "a.pdf", b"1")
        second = storage.save(SHOP, "a.pdf", b"2")

        assert first.key != second.key
        assert second.key == f"{SHOP}/{_STAMP + 1}-a.pdf"

    def test_filename_is_sanitized(self, storage):
        artifact = storage.save(SHOP, "../../etc/passwd", b"x")

        assert artifact.key == f"{SHOP}/{_STAMP}-..-..-etc-passwd"
        assert artifact.path.parent.name == SHOP

    def test_list_is_shop_scoped(self, storage):
        storage.save(SHOP, "a.pdf", b"1")
        storage.save(OTHER_SHOP, "b.pdf", b"2")

        assert [a.filename for a in storage.list(SHOP)] == [f"{_STAMP}-a.pdf"]
        assert storage.list("never-used") == []

    def test_delete(self, storage):
        artifact = storage.save(SHOP, "a.pdf", b"1")

        storage.delete(SHOP, artifact.key)

        assert not storage.exists(SHOP, artifact.key)
        with pytest.raises(ArtifactNotFoundError):
            storage.delete(SHOP, artifact.key)

    def test_failed_write_leaves_no_temp_file(self, storage):
        with pytest.raises(StorageError) as exc_info:
            storage.save_stream(SHOP, "a.pdf", _BrokenStream())

        assert exc_info.value.retryable
        assert list((storage.root / SHOP).iterdir()) == []


class TestShopIsolation:
    def test_foreign_key_is_not_found(self, storage):
        artifact = storage.save(OTHER_SHOP, "secret.pdf", b"x")

        with pytest.raises(ArtifactNotFoundError):
            storage.read(SHOP, artifact.key)
        assert not storage.exists(SHOP, artifact.key)

    def test_traversal_is_not_found(self, storage, captured_logs):
        artifact = storage.save(OTHER_SHOP, "secret.pdf", b"x")
        sneaky = f"{SHOP}/../{artifact.key}"

        with pytest.raises(ArtifactNotFoundError):
            storage.read(SHOP, sneaky)

        assert any(r["message"] == "artifact_key_rejected" for r in captured_logs())

    def test_shop_root_itself_is_not_an_artifact(self, storage):
        storage.save(SHOP, "a.pdf", b"1")

        with pytest.raises(ArtifactNotFoundError):
            storage.stat(SHOP, f"{SHOP}/.")

    def test_symlink_escape_is_refused(self, storage, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("private")
        storage.save(SHOP, "a.pdf", b"1")
        link = storage.root / SHOP / "999-link.pdf"
        link.symlink_to(outside)

        with pytest.raises(ArtifactNotFoundError):
            storage.read(SHOP, f"{SHOP}/999-link.pdf")
        assert [a.filename for a in storage.list(SHOP)] == [f"{_STAMP}-a.pdf"]

    def test_shops_that_sanitize_alike_stay_apart(self, storage):
        artifact = storage.save("a-b", "secret.pdf", b"secret")

        with pytest.raises(ArtifactNotFoundError):
            storage.read("a?b", artifact.key)
        with pytest.raises(ArtifactNotFoundError):
            storage.delete("a?b", artifact.key)
        assert storage.read("a-b", artifact.key) == b"secret"

    @pytest.mark.parametrize("shop", ["a?b", "a/b", "", ".", ".."])
    def test_unsafe_shop_cannot_write_or_list(self, storage, captured_logs, shop):
        with pytest.raises(InvalidShopError) as exc_info:
            storage.save(shop, "a.pdf", b"1")
        with pytest.raises(InvalidShopError):
            storage.list(shop)

        assert exc_info.value.code == "INVALID_SHOP"
        assert not exc_info.value.retryable
        assert any(r["message"] == "artifact_shop_rejected" for r in captured_logs())
        assert not storage.root.exists() or not any(storage.root.iterdir())


class TestPrune:
    def test_prunes_only_old_artifacts(self, storage):
        old = storage.save(SHOP, "old.pdf", b"1")
        fresh = storage.save(SHOP, "fresh.pdf", b"2")
        kept_elsewhere = storage.save(OTHER_SHOP, "old.pdf", b"3")

        old_time = (FIXED_NOW - timedelta(days=2)).timestamp()
        recent_time = (FIXED_NOW - timedelta(hours=1)).timestamp()
        os.utime(old.path, (old_time, old_time))
        os.utime(fresh.path, (recent_time, recent_time))
        os.utime(kept_elsewhere.path, (old_time, old_time))

        deleted = storage.prune_older_than(SHOP, timedelta(days=1))

        assert deleted == [old.key]
        assert storage.exists(SHOP, fresh.key)
        assert storage.exists(OTHER_SHOP, kept_elsewhere.key)
