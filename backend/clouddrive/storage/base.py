"""Storage backend contract.

The lifecycle engine only ever sees ``StorageBackend``. Each concrete
backend (S3, WebDAV, Telegram) implements the four operations below.
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Iterable, Iterator, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class UploadResult:
    physical_id: str
    thumbnail_id: Optional[str] = None
    backend_message_ref: Optional[str] = None


@dataclass
class DownloadResult:
    stream: Iterator[bytes]
    content_type: str = "application/octet-stream"
    content_length: Optional[int] = None
    etag: Optional[str] = None


@dataclass(frozen=True)
class RemoteObject:
    """One payload found on the backend during reconciliation."""
    physical_id: str
    size: int
    updated_at: int  # epoch ms


class StorageBackend(ABC):
    """Payload store for file contents.

    ``remove`` is best-effort: implementations log per-object failures and
    return normally. Callers still guard it, since metadata consistency must
    never depend on the backend being reachable.
    """

    name: str = "abstract"

    @abstractmethod
    def upload(
        self,
        stream: BinaryIO,
        file_name: str,
        content_type: str,
        user_id: int,
        folder_id: int,
    ) -> UploadResult:
        ...

    @abstractmethod
    def download(self, physical_id: str, user_id: int) -> DownloadResult:
        """Raise StorageObjectNotFoundError when the payload is absent."""

    @abstractmethod
    def remove(self, files: Sequence[Any], folders: Sequence[Any], user_id: int) -> None:
        ...

    @abstractmethod
    def list(self, prefix: str) -> List[RemoteObject]:
        """Enumerate payloads under *prefix*. May return [] if unsupported."""


def run_in_batches(
    items: Iterable[T],
    fn: Callable[[T], Any],
    batch_size: int,
    label: str = "storage",
) -> int:
    """Apply *fn* to every item, at most *batch_size* concurrently per batch.

    Each batch completes before the next one starts. Failures are logged
    and counted, never raised.

    Returns:
        Number of items whose call raised.
    """
    items = list(items)
    failures = 0
    if not items:
        return 0

    with ThreadPoolExecutor(max_workers=batch_size) as pool:
        for start in range(0, len(items), batch_size):
            chunk = items[start:start + batch_size]
            futures = [(item, pool.submit(fn, item)) for item in chunk]
            for item, future in futures:
                try:
                    future.result()
                except Exception as e:
                    failures += 1
                    logger.warning("%s removal failed for %r: %s", label, item, e)
    return failures


def iter_chunks(response_body: Any, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
    """Adapt a file-like or iterable body into a bytes iterator."""
    if hasattr(response_body, "iter_content"):
        yield from response_body.iter_content(chunk_size=chunk_size)
        return
    if hasattr(response_body, "read"):
        while True:
            chunk = response_body.read(chunk_size)
            if not chunk:
                break
            yield chunk
        return
    yield from response_body
