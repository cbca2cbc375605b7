"""Tests for the local blob store and signed URLs."""

from urllib.parse import parse_qs, urlsplit

import pytest

from materials_config.loader import load_config
from materials_config.schema import StorageConfig
from materials_kernel.exceptions import (
    FileTooLargeError,
    FileUploadError,
    InvalidSignatureError,
    StoredFileNotFoundError,
)
from materials_services.storage import LocalBlobStore, UploadFile, object_name


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class TestUpload:
    def test_object_name_layout(self):
        assert object_name("bills", "RTP-123", 1710495000000, "pdf") == (
            "bills/RTP-123_1710495000000.pdf"
        )

    def test_upload_writes_file(self, blob_store, deterministic_clock):
        stored = blob_store.upload(
            "bills", "RTP-000", UploadFile("Invoice 42.PDF", b"%PDF-1.4"),
        )

        assert stored.path == f"bills/RTP-000_{deterministic_clock.epoch_millis()}.pdf"
        assert stored.original_name == "Invoice 42.PDF"
        assert stored.content_type == "application/pdf"
        assert blob_store.read(stored.path) == b"%PDF-1.4"
        assert stored.to_attachment().path == stored.path

    def test_missing_extension(self):
        assert UploadFile("scan", b"x").extension == "bin"

    def test_never_overwrites(self, blob_store):
        blob_store.upload("bills", "RTP-000", UploadFile("a.pdf", b"first"))
        with pytest.raises(FileUploadError) as exc_info:
            blob_store.upload("bills", "RTP-000", UploadFile("b.pdf", b"second"))

        assert exc_info.value.reason == "object already exists"

    def test_distinct_times_distinct_objects(self, blob_store, deterministic_clock):
        first = blob_store.upload("bills", "RTP-000", UploadFile("a.pdf", b"1"))
        deterministic_clock.advance(1)
        second = blob_store.upload("bills", "RTP-000", UploadFile("a.pdf", b"2"))
        assert first.path != second.path

    def test_size_limit(self, tmp_path, deterministic_clock):
        store = LocalBlobStore(tmp_path, "key", clock=deterministic_clock, max_upload_bytes=4)
        with pytest.raises(FileTooLargeError) as exc_info:
            store.upload("bills", "RTP-000", UploadFile("big.pdf", b"12345"))

        assert exc_info.value.size == 5
        assert not any(tmp_path.rglob("*.pdf"))

    def test_path_traversal_rejected(self, blob_store):
        with pytest.raises(StoredFileNotFoundError):
            blob_store.read("../secrets.txt")


class TestSignedUrls:
    def test_round_trip(self, blob_store):
        stored = blob_store.upload("bills", "RTP-000", UploadFile("a.pdf", b"x"))
        url = blob_store.signed_url(stored.path)

        assert url.startswith(f"/files/{stored.path}?")
        params = _query(url)
        blob_store.verify(stored.path, int(params["expires"]), params["signature"])

    def test_expired(self, blob_store, deterministic_clock):
        stored = blob_store.upload("bills", "RTP-000", UploadFile("a.pdf", b"x"))
        params = _query(blob_store.signed_url(stored.path, expires_in=60))

        deterministic_clock.advance(61)
        with pytest.raises(InvalidSignatureError) as exc_info:
            blob_store.verify(stored.path, int(params["expires"]), params["signature"])
        assert exc_info.value.reason == "expired"

    def test_tampered_path(self, blob_store):
        stored = blob_store.upload("bills", "RTP-000", UploadFile("a.pdf", b"x"))
        params = _query(blob_store.signed_url(stored.path))

        with pytest.raises(InvalidSignatureError):
            blob_store.verify("bills/other.pdf", int(params["expires"]), params["signature"])

    def test_default_ttl_one_hour(self, blob_store, deterministic_clock):
        stored = blob_store.upload("bills", "RTP-000", UploadFile("a.pdf", b"x"))
        params = _query(blob_store.signed_url(stored.path))
        now = int(deterministic_clock.now_utc().timestamp())
        assert int(params["expires"]) == now + 3600

    def test_missing_object(self, blob_store):
        with pytest.raises(StoredFileNotFoundError):
            blob_store.signed_url("bills/nothing.pdf")


class TestFromConfig:
    def test_environment_overrides_reach_store(self, tmp_path, deterministic_clock):
        overlay = tmp_path / "site.yaml"
        overlay.write_text(
            "storage:\n  base_url: https://files.example/v1/\n  signed_url_ttl_seconds: 600\n"
        )
        config = load_config(
            overlay,
            environ={
                "MATERIALS_STORAGE_ROOT": str(tmp_path / "site-files"),
                "MATERIALS_SIGNING_KEY": "site-key",
            },
        )
        store = LocalBlobStore.from_config(config.storage, clock=deterministic_clock)
        stored = store.upload("bills", "RTP-000", UploadFile("a.pdf", b"x"))

        assert (tmp_path / "site-files" / stored.path).is_file()
        url = store.signed_url(stored.path)
        params = _query(url)
        now = int(deterministic_clock.now_utc().timestamp())
        assert url.startswith(f"https://files.example/v1/{stored.path}?")
        assert int(params["expires"]) == now + 600

        other_key = LocalBlobStore(store.root, "another-key", clock=deterministic_clock)
        with pytest.raises(InvalidSignatureError):
            other_key.verify(stored.path, int(params["expires"]), params["signature"])
        store.verify(stored.path, int(params["expires"]), params["signature"])

    def test_upload_limit_from_config(self, tmp_path):
        config = StorageConfig(root=str(tmp_path), signing_key="k", max_upload_bytes=4)
        store = LocalBlobStore.from_config(config)
        with pytest.raises(FileTooLargeError):
            store.validate(UploadFile("big.pdf", b"12345"))
