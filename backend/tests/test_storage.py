"""Tests for storage configuration and the backend adapters.

Network clients are replaced with mocks; nothing leaves the process.
"""

import io
import json
import threading
import time
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
import requests
from botocore.exceptions import ClientError

from clouddrive.core.storage_config import (
    MASK,
    S3Settings,
    StorageConfig,
    StorageConfigStore,
    TelegramSettings,
    WebDAVSettings,
    drop_masked,
    mask_secrets,
)
from clouddrive.exceptions import StorageBackendError, StorageConfigurationError, StorageObjectNotFoundError
from clouddrive.storage import init_storage
from clouddrive.storage.base import iter_chunks, run_in_batches
from clouddrive.storage.s3 import S3Storage
from clouddrive.storage.telegram import TelegramStorage
from clouddrive.storage.webdav import WebDAVStorage


class TestStorageConfigStore:

    def test_missing_file_gives_empty_document(self, tmp_path):
        store = StorageConfigStore(str(tmp_path / "cfg.json"))
        assert store.load()["storageMode"] == ""
        assert store.get().storage_mode == ""

    def test_save_merges_sections(self, tmp_path):
        path = tmp_path / "cfg.json"
        store = StorageConfigStore(str(path))
        store.save({"storageMode": "s3", "s3": {"bucketName": "b1", "secretAccessKey": "k"}})
        store.save({"s3": {"bucketName": "b2"}})

        on_disk = json.loads(path.read_text())
        assert on_disk["storageMode"] == "s3"
        assert on_disk["s3"] == {"bucketName": "b2", "secretAccessKey": "k"}
        assert store.get().s3.bucket_name == "b2"

    def test_cache_until_invalidated(self, tmp_path):
        path = tmp_path / "cfg.json"
        store = StorageConfigStore(str(path))
        store.save({"storageMode": "webdav"})
        path.write_text(json.dumps({"storageMode": "telegram"}))

        assert store.get().storage_mode == "webdav"
        store.invalidate()
        assert store.get().storage_mode == "telegram"

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text("{not json")
        assert StorageConfigStore(str(path)).load() == {}


class TestSecretMasking:

    def test_mask_secrets(self):
        doc = {
            "storageMode": "s3",
            "s3": {"bucketName": "b", "secretAccessKey": "real"},
            "webdav": {"password": ""},
            "telegram": {"botToken": "123:abc", "chatId": "42"},
        }
        masked = mask_secrets(doc)
        assert masked["s3"] == {"bucketName": "b", "secretAccessKey": MASK}
        assert masked["webdav"] == {"password": ""}
        assert masked["telegram"]["botToken"] == MASK
        assert doc["s3"]["secretAccessKey"] == "real"

    def test_drop_masked_keeps_stored_secret(self, tmp_path):
        store = StorageConfigStore(str(tmp_path / "cfg.json"))
        store.save({"s3": {"secretAccessKey": "real"}})

        store.save(drop_masked({"s3": {"secretAccessKey": MASK, "region": "eu"}}))

        assert store.load()["s3"] == {"secretAccessKey": "real", "region": "eu"}


class TestInitStorage:

    def test_unconfigured(self):
        with pytest.raises(StorageConfigurationError):
            init_storage(StorageConfig())

    def test_unknown_mode(self):
        with pytest.raises(StorageConfigurationError):
            init_storage(StorageConfig(storage_mode="ftp"))

    def test_s3_requires_bucket(self):
        with pytest.raises(StorageConfigurationError):
            init_storage(StorageConfig(storage_mode="s3"))

    def test_s3(self):
        config = StorageConfig.model_validate({
            "storageMode": "s3",
            "s3": {"bucketName": "b", "accessKeyId": "id", "secretAccessKey": "key", "region": "us-east-1"},
        })
        assert isinstance(init_storage(config), S3Storage)

    def test_webdav(self):
        config = StorageConfig.model_validate({"storageMode": "webdav", "webdav": {"endpoint": "https://dav.example"}})
        assert isinstance(init_storage(config), WebDAVStorage)

    def test_telegram_requires_chat(self):
        config = StorageConfig.model_validate({"storageMode": "telegram", "telegram": {"botToken": "t"}})
        with pytest.raises(StorageConfigurationError):
            init_storage(config)

    def test_mode_is_case_insensitive(self):
        config = StorageConfig.model_validate({"storageMode": "WebDAV", "webdav": {"endpoint": "https://dav.example"}})
        assert init_storage(config).name == "webdav"


class TestRunInBatches:

    def test_counts_failures(self):
        def fn(item):
            if item % 2:
                raise RuntimeError("odd")

        assert run_in_batches(range(6), fn, batch_size=2) == 3

    def test_bounded_concurrency(self):
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def fn(_):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.01)
            with lock:
                state["active"] -= 1

        assert run_in_batches(range(9), fn, batch_size=3) == 0
        assert state["peak"] <= 3

    def test_empty(self):
        assert run_in_batches([], Mock(), batch_size=5) == 0

    def test_iter_chunks_reads_file_objects(self):
        assert b"".join(iter_chunks(io.BytesIO(b"x" * 10), chunk_size=3)) == b"x" * 10


def _response(status_code=200, content=b"", headers=None):
    res = Mock()
    res.status_code = status_code
    res.ok = status_code < 400
    res.content = content
    res.headers = headers or {}
    res.iter_content.return_value = iter([content])
    return res


class TestWebDAVStorage:

    @pytest.fixture()
    def session(self):
        return Mock(spec=requests.Session)

    @pytest.fixture()
    def backend(self, session):
        return WebDAVStorage(WebDAVSettings(endpoint="https://dav.example/remote/", username="u", password="p"),
                             batch_size=2, session=session)

    def test_requires_endpoint(self):
        with pytest.raises(StorageConfigurationError):
            WebDAVStorage(WebDAVSettings())

    def test_upload_creates_directories(self, backend, session):
        session.request.return_value = _response(404)
        session.put.return_value = _response(201)

        result = backend.upload(io.BytesIO(b"data"), "a b.txt", "text/plain", 1, 2)

        assert result.physical_id == "1/2/a b.txt"
        assert session.put.call_args.args[0] == "https://dav.example/remote/1/2/a%20b.txt"
        mkcols = [c for c in session.request.call_args_list if c.args[0] == "MKCOL"]
        assert [c.args[1] for c in mkcols] == ["https://dav.example/remote/1", "https://dav.example/remote/1/2"]

    def test_upload_failure(self, backend, session):
        session.request.return_value = _response(207)
        session.put.return_value = _response(507)
        with pytest.raises(StorageBackendError):
            backend.upload(io.BytesIO(b"data"), "a.txt", "text/plain", 1, 2)

    def test_download_missing(self, backend, session):
        session.get.return_value = _response(404)
        with pytest.raises(StorageObjectNotFoundError):
            backend.download("1/2/a.txt", 1)

    def test_download(self, backend, session):
        session.get.return_value = _response(200, b"hello", {"Content-Length": "5", "Content-Type": "text/plain"})
        result = backend.download("1/2/a.txt", 1)
        assert b"".join(result.stream) == b"hello"
        assert (result.content_length, result.content_type) == (5, "text/plain")

    def test_remove_deletes_files_then_empty_dirs(self, backend, session):
        session.delete.return_value = _response(204)
        session.request.return_value = _response(207, (
            b'<?xml version="1.0"?><d:multistatus xmlns:d="DAV:">'
            b"<d:response><d:href>/remote/1/2/</d:href></d:response>"
            b"</d:multistatus>"
        ))
        files = [SimpleNamespace(physical_id="1/2/a.txt"), SimpleNamespace(physical_id="1/2/b.txt")]

        backend.remove(files, [], 1)

        deleted = [c.args[0] for c in session.delete.call_args_list]
        assert sorted(deleted[:2]) == ["https://dav.example/remote/1/2/a.txt", "https://dav.example/remote/1/2/b.txt"]
        assert deleted[2] == "https://dav.example/remote/1/2"

    def test_list_parses_multistatus(self, backend, session):
        session.request.return_value = _response(207, (
            b'<?xml version="1.0"?><d:multistatus xmlns:d="DAV:">'
            b"<d:response><d:href>/remote/1/</d:href><d:propstat><d:prop>"
            b"<d:resourcetype><d:collection/></d:resourcetype></d:prop></d:propstat></d:response>"
            b"<d:response><d:href>/remote/1/2/a%20b.txt</d:href><d:propstat><d:prop>"
            b"<d:getcontentlength>12</d:getcontentlength>"
            b"<d:getlastmodified>Mon, 01 Jan 2024 00:00:00 GMT</d:getlastmodified>"
            b"</d:prop></d:propstat></d:response>"
            b"</d:multistatus>"
        ))

        objects = backend.list("1/")

        assert len(objects) == 1
        assert objects[0].physical_id == "1/2/a b.txt"
        assert objects[0].size == 12
        assert objects[0].updated_at == int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)

    def test_list_missing_prefix(self, backend, session):
        session.request.return_value = _response(404)
        assert backend.list("1/") == []


class TestTelegramStorage:

    @pytest.fixture()
    def session(self):
        return Mock(spec=requests.Session)

    @pytest.fixture()
    def backend(self, session):
        return TelegramStorage(TelegramSettings(bot_token="123:abc", chat_id="-100"), session=session)

    def _api(self, session, body):
        res = _response(200)
        res.json.return_value = body
        session.post.return_value = res

    def test_upload_returns_file_and_message_ids(self, backend, session):
        self._api(session, {"ok": True, "result": {
            "message_id": 9,
            "document": {"file_id": "F1", "thumbnail": {"file_id": "T1"}},
        }})

        result = backend.upload(io.BytesIO(b"data"), "a.txt", "text/plain", 1, 2)

        assert (result.physical_id, result.thumbnail_id, result.backend_message_ref) == ("F1", "T1", "9")
        assert session.post.call_args.args[0] == "https://api.telegram.org/bot123:abc/sendDocument"

    def test_api_error(self, backend, session):
        self._api(session, {"ok": False, "description": "Bad Request"})
        with pytest.raises(StorageBackendError):
            backend.upload(io.BytesIO(b"data"), "a.txt", "text/plain", 1, 2)

    def test_download(self, backend, session):
        self._api(session, {"ok": True, "result": {"file_path": "documents/a.txt", "file_size": 5}})
        session.get.return_value = _response(200, b"hello", {"Content-Type": "text/plain"})

        result = backend.download("F1", 1)

        assert b"".join(result.stream) == b"hello"
        assert result.content_length == 5
        assert session.get.call_args.args[0] == "https://api.telegram.org/file/bot123:abc/documents/a.txt"

    def test_download_unknown_file_id(self, backend, session):
        self._api(session, {"ok": False, "error_code": 400, "description": "Bad Request: wrong file_id"})
        with pytest.raises(StorageObjectNotFoundError):
            backend.download("F1", 1)

    def test_download_transport_failure_is_not_not_found(self, backend, session):
        session.post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(StorageBackendError) as exc_info:
            backend.download("F1", 1)

        assert not isinstance(exc_info.value, StorageObjectNotFoundError)

    def test_download_server_error_is_not_not_found(self, backend, session):
        self._api(session, {"ok": False, "error_code": 502, "description": "Bad Gateway"})

        with pytest.raises(StorageBackendError) as exc_info:
            backend.download("F1", 1)

        assert not isinstance(exc_info.value, StorageObjectNotFoundError)

    def test_remove_uses_message_refs(self, backend, session):
        self._api(session, {"ok": True, "result": True})
        files = [SimpleNamespace(backend_message_ref="9"), SimpleNamespace(backend_message_ref=None)]

        backend.remove(files, [], 1)

        assert session.post.call_args.kwargs["json"] == {"chat_id": "-100", "message_ids": [9]}

    def test_remove_failure_is_logged_not_raised(self, backend, session):
        self._api(session, {"ok": False, "description": "message can't be deleted"})
        backend.remove([SimpleNamespace(backend_message_ref="9")], [], 1)

    def test_list_is_unsupported(self, backend):
        assert backend.list("1/") == []


class TestS3Storage:

    @pytest.fixture()
    def client(self):
        return Mock()

    @pytest.fixture()
    def backend(self, client):
        return S3Storage(S3Settings(bucket_name="bucket"), client=client)

    def test_upload_key_layout(self, backend, client):
        result = backend.upload(io.BytesIO(b"data"), "a.txt", "text/plain", 1, 2)
        assert result.physical_id == "1/2/a.txt"
        assert client.upload_fileobj.call_args.args[1:] == ("bucket", "1/2/a.txt")

    def test_download_missing(self, backend, client):
        client.get_object.side_effect = ClientError({"Error": {"Code": "NoSuchKey", "Message": "gone"}}, "GetObject")
        with pytest.raises(StorageObjectNotFoundError):
            backend.download("1/2/a.txt", 1)

    def test_download(self, backend, client):
        client.get_object.return_value = {"Body": io.BytesIO(b"hello"), "ContentLength": 5, "ETag": '"e"'}
        result = backend.download("1/2/a.txt", 1)
        assert b"".join(result.stream) == b"hello"
        assert result.etag == '"e"'

    def test_remove_batches_and_cleans_markers(self, backend, client):
        client.delete_objects.return_value = {}
        client.get_paginator.return_value.paginate.return_value = [{}]
        files = [SimpleNamespace(physical_id="1/2/a.txt"), SimpleNamespace(physical_id=None)]

        backend.remove(files, [], 1)

        assert client.delete_objects.call_args.kwargs["Delete"]["Objects"] == [{"Key": "1/2/a.txt"}]
        client.delete_object.assert_called_once_with(Bucket="bucket", Key="1/2/")

    def test_list_skips_markers(self, backend, client):
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        client.get_paginator.return_value.paginate.return_value = [{"Contents": [
            {"Key": "1/2/", "Size": 0, "LastModified": modified},
            {"Key": "1/2/a.txt", "Size": 3, "LastModified": modified},
        ]}]

        objects = backend.list("1/")

        assert [o.physical_id for o in objects] == ["1/2/a.txt"]
        assert objects[0].updated_at == int(modified.timestamp() * 1000)
