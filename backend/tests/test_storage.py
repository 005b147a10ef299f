import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from dropshare.core.errors import ObjectNotFound, StorageBackendFailure
from dropshare.services.storage import LocalStorage, S3Storage, make_object_key


class TestObjectKeys:
    def test_key_keeps_extension_and_owner(self):
        key = make_object_key(7, "Report.PDF")
        assert key.startswith("uploads/7/")
        assert key.endswith(".pdf")

    def test_odd_extension_dropped(self):
        key = make_object_key(7, "notes.t?t")
        assert "." not in key.rsplit("/", 1)[1]

    def test_keys_are_unique(self):
        assert make_object_key(1, "a.txt") != make_object_key(1, "a.txt")


class TestLocalStorage:
    def test_put_then_read_in_chunks(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        storage.put("uploads/1/a.bin", io.BytesIO(b"abcdefghij"))

        chunks = list(storage.get("uploads/1/a.bin", chunk_size=4))
        assert chunks == [b"abcd", b"efgh", b"ij"]

    def test_missing_object(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        with pytest.raises(ObjectNotFound):
            storage.get("uploads/1/nope.bin")

    def test_stream_closed_early_releases_handle(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        storage.put("k", io.BytesIO(b"x" * 100))

        stream = storage.get("k", chunk_size=10)
        assert next(stream) == b"x" * 10
        stream.close()
        assert stream.closed
        assert list(stream) == []

    def test_key_outside_root_rejected(self, tmp_path):
        storage = LocalStorage(str(tmp_path / "root"))
        with pytest.raises(StorageBackendFailure):
            storage.put("../escape.txt", io.BytesIO(b"x"))

    def test_delete_is_quiet_for_missing_objects(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        storage.put("k", io.BytesIO(b"x"))
        storage.delete("k")
        storage.delete("k")
        assert not storage.exists("k")


@pytest.fixture
def s3_client():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


class TestS3Storage:
    def test_get_streams_body(self, s3_client):
        client, stubber = s3_client
        body = StreamingBody(io.BytesIO(b"hello world"), len(b"hello world"))
        stubber.add_response("get_object", {"Body": body}, {"Bucket": "drop", "Key": "k"})

        stream = S3Storage("drop", client=client).get("k", chunk_size=5)
        assert b"".join(stream) == b"hello world"
        assert stream.closed

    def test_missing_key_is_object_not_found(self, s3_client):
        client, stubber = s3_client
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

        with pytest.raises(ObjectNotFound):
            S3Storage("drop", client=client).get("gone")

    def test_server_error_is_backend_failure(self, s3_client):
        client, stubber = s3_client
        stubber.add_client_error("get_object", service_error_code="InternalError", http_status_code=500)

        with pytest.raises(StorageBackendFailure):
            S3Storage("drop", client=client).get("k")

    def test_exists(self, s3_client):
        client, stubber = s3_client
        stubber.add_response("head_object", {}, {"Bucket": "drop", "Key": "here"})
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        storage = S3Storage("drop", client=client)
        assert storage.exists("here")
        assert not storage.exists("missing")

    def test_delete(self, s3_client):
        client, stubber = s3_client
        stubber.add_response("delete_object", {}, {"Bucket": "drop", "Key": "k"})
        S3Storage("drop", client=client).delete("k")
