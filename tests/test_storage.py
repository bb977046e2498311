import boto3
import pytest
from botocore.stub import ANY, Stubber

from submission_api.errors import StorageError
from submission_api.settings import Settings
from submission_api.storage import (
    LocalObjectStore, S3ObjectStore, build_object_store, object_key, safe_filename,
)


@pytest.fixture
def s3():
    client = boto3.client(
        "s3", region_name="eu-west-1", aws_access_key_id="test", aws_secret_access_key="test",
    )
    with Stubber(client) as stub:
        yield client, stub


def test_s3_put_returns_public_url(s3):
    client, stub = s3
    stub.add_response(
        "put_object",
        {"ETag": '"abc"'},
        {"Bucket": "assignments", "Key": ANY, "Body": b"%PDF-1.4", "ContentType": "application/pdf"},
    )
    store = S3ObjectStore(client, "assignments", region="eu-west-1")
    stored = store.put(b"%PDF-1.4", "My Essay.pdf", "application/pdf")
    assert stored.key.startswith("assignments/")
    assert stored.key.endswith("_My_Essay.pdf")
    assert stored.url == f"https://assignments.s3.eu-west-1.amazonaws.com/{stored.key}"
    stub.assert_no_pending_responses()


def test_s3_put_failure_raises_storage_error(s3):
    client, stub = s3
    stub.add_client_error("put_object", service_error_code="SlowDown", http_status_code=503)
    store = S3ObjectStore(client, "assignments", public_base_url="https://cdn.example.com/")
    with pytest.raises(StorageError):
        store.put(b"data", "a.pdf", "application/pdf")


def test_s3_delete(s3):
    client, stub = s3
    stub.add_response("delete_object", {}, {"Bucket": "assignments", "Key": "assignments/x.pdf"})
    S3ObjectStore(client, "assignments").delete("assignments/x.pdf")
    stub.assert_no_pending_responses()


def test_local_store_roundtrip(tmp_path):
    store = LocalObjectStore(str(tmp_path), "http://localhost:5000/uploads/")
    stored = store.put(b"hello", "notes.txt", "text/plain")
    assert (tmp_path / stored.key).read_bytes() == b"hello"
    assert stored.url == f"http://localhost:5000/uploads/{stored.key}"
    store.delete(stored.key)
    assert not (tmp_path / stored.key).exists()
    store.delete(stored.key)


def test_object_key_without_filename():
    key = object_key("assignments", "Report.PDF", use_filename=False)
    assert key.startswith("assignments/")
    assert key.endswith(".pdf")
    assert "Report" not in key


def test_safe_filename():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("C:\\Users\\me\\tarea final.docx") == "tarea_final.docx"
    assert safe_filename("") == "file"


def test_build_object_store_backends(tmp_path):
    local = build_object_store(Settings(storage_backend="local", upload_dir=str(tmp_path)))
    assert isinstance(local, LocalObjectStore)
    assert local.public_base_url == "http://localhost:5000/uploads"

    s3 = build_object_store(Settings(
        storage_backend="s3", s3_bucket="bucket", aws_default_region="us-east-1",
        aws_access_key_id="k", aws_secret_access_key="s",
    ))
    assert isinstance(s3, S3ObjectStore)
    assert s3.public_base_url == "https://bucket.s3.us-east-1.amazonaws.com"

    with pytest.raises(ValueError):
        build_object_store(Settings(storage_backend="ftp"))
