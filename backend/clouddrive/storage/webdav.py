"""WebDAV backend (Nextcloud, ownCloud, Apache mod_dav, ...)."""

import logging
import xml.etree.ElementTree as ET
from email.utils import parsedate_to_datetime
from typing import Any, BinaryIO, List, Optional, Sequence
from urllib.parse import quote, unquote, urlparse

import requests

from ..core.storage_config import WebDAVSettings
from ..core.token_factory import now_ms
from ..exceptions import StorageBackendError, StorageConfigurationError, StorageObjectNotFoundError
from .base import DownloadResult, RemoteObject, StorageBackend, UploadResult, iter_chunks, run_in_batches

logger = logging.getLogger(__name__)

_DAV = "{DAV:}"


def _encode_path(path: str) -> str:
    return "/".join(quote(part, safe="") for part in path.split("/"))


class WebDAVStorage(StorageBackend):
    """Payloads live at ``{endpoint}/{user_id}/{folder_id}/{file_name}``."""

    name = "webdav"

    def __init__(self, config: WebDAVSettings, batch_size: int = 5, timeout: int = 60,
                 session: Optional[requests.Session] = None):
        if not config.endpoint:
            raise StorageConfigurationError("WebDAV endpoint is not configured.")
        self.endpoint = config.endpoint.rstrip("/")
        self.batch_size = batch_size
        self.timeout = timeout
        self.session = session or requests.Session()
        if config.username or config.password:
            self.session.auth = (config.username, config.password)

    def _url(self, path: str) -> str:
        return f"{self.endpoint}/{_encode_path(path)}"

    def _ensure_dir(self, path: str) -> None:
        current = ""
        for part in [p for p in path.split("/") if p]:
            current = f"{current}/{part}" if current else part
            url = self._url(current)
            check = self.session.request("PROPFIND", url, headers={"Depth": "0"}, timeout=self.timeout)
            if check.status_code == 404:
                self.session.request("MKCOL", url, timeout=self.timeout)

    def upload(self, stream: BinaryIO, file_name: str, content_type: str,
               user_id: int, folder_id: int) -> UploadResult:
        dir_path = f"{user_id}/{folder_id}"
        key = f"{dir_path}/{file_name}"
        try:
            self._ensure_dir(dir_path)
            res = self.session.put(
                self._url(key), data=stream,
                headers={"Content-Type": content_type}, timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageBackendError(f"WebDAV upload failed: {e}", self.name) from e
        if not res.ok:
            raise StorageBackendError(f"WebDAV upload failed: {res.status_code} {res.reason}", self.name)
        return UploadResult(physical_id=key)

    def download(self, physical_id: str, user_id: int) -> DownloadResult:
        try:
            res = self.session.get(self._url(physical_id), stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageBackendError(f"WebDAV download failed: {e}", self.name) from e
        if res.status_code == 404:
            raise StorageObjectNotFoundError(physical_id, self.name)
        if not res.ok:
            raise StorageBackendError(f"WebDAV download failed: {res.status_code}", self.name)

        length = res.headers.get("Content-Length")
        return DownloadResult(
            stream=iter_chunks(res),
            content_type=res.headers.get("Content-Type") or "application/octet-stream",
            content_length=int(length) if length and length.isdigit() else None,
            etag=res.headers.get("ETag"),
        )

    def remove(self, files: Sequence[Any], folders: Sequence[Any], user_id: int) -> None:
        targets = [f.physical_id for f in files if f.physical_id]
        parents = {t.rsplit("/", 1)[0] for t in targets if "/" in t}

        def _delete(path: str) -> None:
            res = self.session.delete(self._url(path), timeout=self.timeout)
            if not res.ok and res.status_code != 404:
                raise StorageBackendError(f"DELETE returned {res.status_code}", self.name)

        run_in_batches(targets, _delete, self.batch_size, label="WebDAV")

        # Directory cleanup stays sequential.
        for parent in parents:
            self._delete_dir_if_empty(parent)

    def _delete_dir_if_empty(self, dir_path: str) -> None:
        url = self._url(dir_path)
        try:
            res = self.session.request("PROPFIND", url, headers={"Depth": "1"}, timeout=self.timeout)
            if not res.ok:
                return
            # One <response> means the collection lists only itself.
            if len(ET.fromstring(res.content).findall(f"{_DAV}response")) <= 1:
                self.session.delete(url, timeout=self.timeout)
        except (requests.RequestException, ET.ParseError) as e:
            logger.warning("WebDAV empty-dir cleanup failed for %s: %s", dir_path, e)

    def list(self, prefix: str) -> List[RemoteObject]:
        try:
            res = self.session.request(
                "PROPFIND", self._url(prefix.rstrip("/")) + "/",
                headers={"Depth": "infinity"}, timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageBackendError(f"WebDAV PROPFIND failed: {e}", self.name) from e
        if res.status_code == 404:
            return []
        if not res.ok:
            raise StorageBackendError(f"WebDAV PROPFIND failed: {res.status_code}", self.name)
        return self._parse_multistatus(res.content, prefix)

    def _parse_multistatus(self, body: bytes, prefix: str) -> List[RemoteObject]:
        base_path = urlparse(self.endpoint).path.rstrip("/")
        objects: List[RemoteObject] = []
        for resp in ET.fromstring(body).findall(f"{_DAV}response"):
            if resp.find(f".//{_DAV}collection") is not None:
                continue
            href = unquote(resp.findtext(f"{_DAV}href", default=""))
            path = urlparse(href).path
            if base_path and path.startswith(base_path):
                path = path[len(base_path):]
            path = path.lstrip("/")
            if not path or (prefix and not path.startswith(prefix)):
                continue

            size_text = resp.findtext(f".//{_DAV}getcontentlength")
            modified = resp.findtext(f".//{_DAV}getlastmodified")
            updated_at = now_ms()
            if modified:
                try:
                    updated_at = int(parsedate_to_datetime(modified).timestamp() * 1000)
                except (TypeError, ValueError):
                    logger.debug("Unparseable getlastmodified for %s: %r", path, modified)
            objects.append(RemoteObject(
                physical_id=path,
                size=int(size_text) if size_text and size_text.isdigit() else 0,
                updated_at=updated_at,
            ))
        return objects
