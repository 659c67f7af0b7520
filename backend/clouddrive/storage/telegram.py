"""Telegram Bot API backend: each payload is a document message in one chat."""

import logging
from typing import Any, BinaryIO, List, Optional, Sequence

import requests

from ..core.storage_config import TelegramSettings
from ..exceptions import StorageBackendError, StorageConfigurationError, StorageObjectNotFoundError
from .base import DownloadResult, RemoteObject, StorageBackend, UploadResult, iter_chunks

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
# deleteMessages accepts at most 100 ids per call.
DELETE_CHUNK = 100


class TelegramStorage(StorageBackend):
    """Physical id is the Telegram ``file_id``; the message id is kept for deletion."""

    name = "telegram"

    def __init__(self, config: TelegramSettings, timeout: int = 60,
                 session: Optional[requests.Session] = None):
        if not config.bot_token or not config.chat_id:
            raise StorageConfigurationError("Telegram bot token and chat id are required.")
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def _method_url(self, method: str) -> str:
        return f"{API_BASE}/bot{self.bot_token}/{method}"

    def _call(self, method: str, missing_id: Optional[str] = None, **kwargs) -> Any:
        """POST a Bot API method and return its result.

        With *missing_id*, a 400 or 404 rejection means the object does not
        exist and raises StorageObjectNotFoundError.
        """
        try:
            res = self.session.post(self._method_url(method), timeout=self.timeout, **kwargs)
            body = res.json()
        except (requests.RequestException, ValueError) as e:
            raise StorageBackendError(f"Telegram {method} failed: {e}", self.name) from e
        if not body.get("ok"):
            if missing_id is not None and body.get("error_code") in (400, 404):
                raise StorageObjectNotFoundError(missing_id, self.name)
            raise StorageBackendError(
                f"Telegram {method} failed: {body.get('description', res.status_code)}", self.name
            )
        return body["result"]

    def upload(self, stream: BinaryIO, file_name: str, content_type: str,
               user_id: int, folder_id: int) -> UploadResult:
        result = self._call(
            "sendDocument",
            data={"chat_id": self.chat_id},
            files={"document": (file_name, stream, content_type)},
        )
        document = result.get("document") or {}
        thumb = document.get("thumbnail") or document.get("thumb") or {}
        if not document.get("file_id"):
            raise StorageBackendError("Telegram returned no file id", self.name)
        return UploadResult(
            physical_id=document["file_id"],
            thumbnail_id=thumb.get("file_id"),
            backend_message_ref=str(result["message_id"]),
        )

    def download(self, physical_id: str, user_id: int) -> DownloadResult:
        info = self._call("getFile", missing_id=physical_id, data={"file_id": physical_id})

        url = f"{API_BASE}/file/bot{self.bot_token}/{info['file_path']}"
        try:
            res = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageBackendError(f"Telegram download failed: {e}", self.name) from e
        if res.status_code == 404:
            raise StorageObjectNotFoundError(physical_id, self.name)
        if not res.ok:
            raise StorageBackendError(f"Telegram download failed: {res.status_code}", self.name)

        return DownloadResult(
            stream=iter_chunks(res),
            content_type=res.headers.get("Content-Type") or "application/octet-stream",
            content_length=info.get("file_size"),
        )

    def remove(self, files: Sequence[Any], folders: Sequence[Any], user_id: int) -> None:
        message_ids = []
        for f in files:
            ref = getattr(f, "backend_message_ref", None)
            if ref and str(ref).isdigit():
                message_ids.append(int(ref))

        for start in range(0, len(message_ids), DELETE_CHUNK):
            chunk = message_ids[start:start + DELETE_CHUNK]
            try:
                self._call("deleteMessages", json={"chat_id": self.chat_id, "message_ids": chunk})
            except StorageBackendError as e:
                logger.warning("Telegram deleteMessages failed for %d messages: %s", len(chunk), e)

    def list(self, prefix: str) -> List[RemoteObject]:
        # The Bot API cannot enumerate a chat's history.
        return []
