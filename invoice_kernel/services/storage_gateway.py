"""
StorageGateway -- shop-scoped persistence of generated artifacts.

Responsibility:
    Writes invoice PDFs and bulk archives under a per-shop directory,
    hands back opaque keys, and serves them back only to the shop that
    owns them.

Architecture position:
    Kernel > Services -- imperative shell (filesystem I/O).
    Called by the JobOrchestrator and ArchiveBundler.

Invariants enforced:
    - A shop name must already be a safe path component
      (``[a-zA-Z0-9-_.]``, not only dots) and is used verbatim as the
      shop directory, so distinct shops never share one.  Filenames are
      reduced to the same alphabet; anything else becomes ``-``.
    - Keys have the shape ``{shop}/{epoch_ms}-{name}``.
    - Every read, delete and listing resolves the real path (following
      symlinks) and requires it to stay inside the caller's shop root.
      Anything else is reported as ArtifactNotFoundError, exactly like a
      missing key, so other shops' keys cannot be probed.
    - Writes land in a temp file first and are renamed into place, so a
      reader never sees a half-written artifact.

Failure modes:
    - ArtifactNotFoundError: missing key, foreign key, traversal attempt.
    - StorageError: the filesystem refused a write or delete.
    - InvalidShopError: a write or listing for an unsafe shop name.
"""

from __future__ import annotations

import io
import os
import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import BinaryIO
from urllib.parse import quote

from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.exceptions import ArtifactNotFoundError, InvalidShopError, StorageError
from invoice_kernel.logging_config import get_logger

logger = get_logger("services.storage")

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")
_TEMP_PREFIX = ".tmp-"

DOWNLOAD_ROUTE = "/api/download/"


def sanitize_component(value: str) -> str:
    """Reduce ``value`` to a single safe path component."""
    cleaned = _UNSAFE_CHARS.sub("-", value)
    # "." / ".." survive the character filter but still mean something to
    # the filesystem
    if set(cleaned) <= {"."}:
        cleaned = cleaned.replace(".", "-") or "-"
    return cleaned


def shop_directory(shop: str) -> str:
    """
    Directory name for ``shop``.

    Only names that are already a safe path component qualify: rewriting
    one would let two shops share a directory.

    Raises:
        InvalidShopError: blank or unsafe shop name.
    """
    if not shop or sanitize_component(shop) != shop:
        raise InvalidShopError(shop)
    return shop


def download_url(key: str, shop: str | None = None) -> str:
    url = DOWNLOAD_ROUTE + quote(key, safe="")
    if shop is not None:
        url += "?shop=" + quote(shop, safe="")
    return url


@dataclass(frozen=True)
class StoredArtifact:
    key: str
    path: Path
    size: int
    created_at: datetime

    @property
    def filename(self) -> str:
        return self.key.rsplit("/", 1)[-1]


class StorageGateway(ABC):
    """
    Storage contract used by the orchestrator.

    Every method takes the caller's shop and must refuse keys outside it.
    """

    @abstractmethod
    def save(self, shop: str, filename: str, data: bytes) -> StoredArtifact: ...

    @abstractmethod
    def save_stream(self, shop: str, filename: str, source: BinaryIO) -> StoredArtifact: ...

    @abstractmethod
    def open(self, shop: str, key: str) -> BinaryIO: ...

    @abstractmethod
    def stat(self, shop: str, key: str) -> StoredArtifact: ...

    @abstractmethod
    def delete(self, shop: str, key: str) -> None: ...

    @abstractmethod
    def list(self, shop: str) -> list[StoredArtifact]: ...

    @abstractmethod
    def prune_older_than(self, shop: str, max_age: timedelta) -> list[str]: ...

    def read(self, shop: str, key: str) -> bytes:
        with self.open(shop, key) as fh:
            return fh.read()

    def exists(self, shop: str, key: str) -> bool:
        try:
            self.stat(shop, key)
        except ArtifactNotFoundError:
            return False
        return True


class FileStorageGateway(StorageGateway):
    """
    Local-filesystem storage rooted at ``root``.

    Contract:
        Layout is ``<root>/<shop>/<epoch_ms>-<sanitized name>``.

    Guarantees:
        - Keys are unique: a collision on the same millisecond moves the
          timestamp forward until the name is free.

    Non-goals:
        - No cross-shop operations; maintenance loops over shops itself.
    """

    def __init__(self, root: str | Path, clock: Clock | None = None):
        self._root = Path(root)
        self._clock = clock or SystemClock()

    @property
    def root(self) -> Path:
        return self._root

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def save(self, shop: str, filename: str, data: bytes) -> StoredArtifact:
        return self.save_stream(shop, filename, io.BytesIO(data))

    def save_stream(self, shop: str, filename: str, source: BinaryIO) -> StoredArtifact:
        try:
            shop_dir = shop_directory(shop)
        except InvalidShopError:
            logger.warning("artifact_shop_rejected", extra={"shop": shop})
            raise
        shop_root = self._root / shop_dir
        safe_name = sanitize_component(filename)
        tmp_path: Path | None = None

        try:
            shop_root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=shop_root, prefix=_TEMP_PREFIX, delete=False,
            ) as tmp:
                tmp_path = Path(tmp.name)
                shutil.copyfileobj(source, tmp)
                tmp.flush()
                os.fsync(tmp.fileno())

            stamp = self._clock.epoch_millis()
            target = shop_root / f"{stamp}-{safe_name}"
            while target.exists():
                stamp += 1
                target = shop_root / f"{stamp}-{safe_name}"
            os.replace(tmp_path, target)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            logger.error(
                "artifact_write_failed",
                extra={"shop": shop, "artifact_name": safe_name, "error": str(exc)},
            )
            raise StorageError("write", shop, str(exc)) from exc

        key = f"{shop_dir}/{target.name}"
        artifact = self._artifact(key, target)
        logger.info(
            "artifact_stored",
            extra={"shop": shop, "key": key, "size": artifact.size},
        )
        return artifact

    def delete(self, shop: str, key: str) -> None:
        path = self._resolve(shop, key)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(key, shop) from exc
        except OSError as exc:
            raise StorageError("delete", shop, str(exc)) from exc
        logger.info("artifact_deleted", extra={"shop": shop, "key": key})

    def prune_older_than(self, shop: str, max_age: timedelta) -> list[str]:
        """Delete this shop's artifacts whose mtime is older than ``max_age``.

        Returns the deleted keys.
        """
        cutoff = self._clock.now() - max_age
        deleted: list[str] = []
        for artifact in self.list(shop):
            if artifact.created_at < cutoff:
                self.delete(shop, artifact.key)
                deleted.append(artifact.key)
        logger.info(
            "artifacts_pruned",
            extra={"shop": shop, "deleted": len(deleted), "cutoff": cutoff},
        )
        return deleted

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def open(self, shop: str, key: str) -> BinaryIO:
        path = self._resolve(shop, key)
        try:
            return path.open("rb")
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(key, shop) from exc
        except OSError as exc:
            raise StorageError("read", shop, str(exc)) from exc

    def stat(self, shop: str, key: str) -> StoredArtifact:
        return self._artifact(key, self._resolve(shop, key))

    def list(self, shop: str) -> list[StoredArtifact]:
        shop_dir = shop_directory(shop)
        shop_root = self._root / shop_dir
        if not shop_root.is_dir():
            return []
        artifacts = []
        for entry in sorted(shop_root.iterdir()):
            if entry.name.startswith(".") or not entry.is_file():
                continue
            key = f"{shop_dir}/{entry.name}"
            try:
                artifacts.append(self._artifact(key, self._resolve(shop, key)))
            except ArtifactNotFoundError:
                # Symlink escaping the shop root, or removed concurrently
                continue
        return artifacts

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _resolve(self, shop: str, key: str) -> Path:
        """Real path for ``key``, guaranteed inside the shop root."""
        try:
            shop_dir = shop_directory(shop)
        except InvalidShopError as exc:
            raise ArtifactNotFoundError(key, shop) from exc
        if not key.startswith(f"{shop_dir}/"):
            raise ArtifactNotFoundError(key, shop)
        try:
            shop_root = (self._root / shop_dir).resolve()
            candidate = (self._root / key).resolve()
        except (OSError, ValueError) as exc:
            raise ArtifactNotFoundError(key, shop) from exc

        if candidate == shop_root or not candidate.is_relative_to(shop_root):
            logger.warning(
                "artifact_key_rejected",
                extra={"shop": shop, "key": key},
            )
            raise ArtifactNotFoundError(key, shop)
        if not candidate.is_file():
            raise ArtifactNotFoundError(key, shop)
        return candidate

    @staticmethod
    def _artifact(key: str, path: Path) -> StoredArtifact:
        stat = path.stat()
        return StoredArtifact(
            key=key,
            path=path,
            size=stat.st_size,
            created_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
        )
