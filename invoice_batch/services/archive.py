"""
ArchiveBundler -- packs a job's invoice PDFs into one ZIP artifact.

Contract:
    ``bundle(shop, entries, archive_name)`` streams each stored artifact
    into a deflate-compressed archive and saves the archive through the
    StorageGateway.

Invariants enforced:
    - Entries appear in the archive in the order given.
    - A source that is missing from storage is skipped and reported in
      ``BundleResult.missing``; it never aborts the bundle.
    - Archive entry names are unique (a repeated name gets a ``-<n>``
      suffix before the extension).

Failure modes:
    - StorageError: the archive itself could not be written.
"""

from __future__ import annotations

import shutil
import tempfile
import time
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass

from invoice_kernel.exceptions import ArtifactNotFoundError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.services.storage_gateway import StorageGateway, StoredArtifact

logger = get_logger("batch.archive")

# Spooled archives move to disk beyond this size
_SPOOL_LIMIT = 8 * 1024 * 1024
_CHUNK = 64 * 1024


@dataclass(frozen=True)
class ArchiveEntry:
    key: str
    arcname: str


@dataclass(frozen=True)
class BundleResult:
    artifact: StoredArtifact
    included: tuple[str, ...]
    missing: tuple[str, ...]


def _unique_name(name: str, seen: set[str]) -> str:
    if name not in seen:
        return name
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    n = 2
    while True:
        candidate = f"{stem}-{n}.{ext}" if ext else f"{stem}-{n}"
        if candidate not in seen:
            return candidate
        n += 1


class ArchiveBundler:
    def __init__(self, storage: StorageGateway):
        self._storage = storage

    def bundle(
        self,
        shop: str,
        entries: Sequence[ArchiveEntry],
        archive_name: str,
    ) -> BundleResult:
        start = time.monotonic()
        included: list[str] = []
        missing: list[str] = []
        seen: set[str] = set()

        with tempfile.SpooledTemporaryFile(max_size=_SPOOL_LIMIT) as spool:
            with zipfile.ZipFile(
                spool, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9,
            ) as archive:
                for entry in entries:
                    try:
                        source = self._storage.open(shop, entry.key)
                    except ArtifactNotFoundError:
                        logger.warning(
                            "archive_source_missing",
                            extra={"shop": shop, "key": entry.key},
                        )
                        missing.append(entry.key)
                        continue
                    arcname = _unique_name(entry.arcname, seen)
                    seen.add(arcname)
                    with source, archive.open(arcname, "w") as target:
                        shutil.copyfileobj(source, target, _CHUNK)
                    included.append(entry.key)

            spool.seek(0)
            artifact = self._storage.save_stream(shop, archive_name, spool)

        logger.info(
            "archive_bundled",
            extra={
                "shop": shop,
                "key": artifact.key,
                "included": len(included),
                "missing": len(missing),
                "size": artifact.size,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return BundleResult(
            artifact=artifact,
            included=tuple(included),
            missing=tuple(missing),
        )
