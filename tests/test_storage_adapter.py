import re

import pytest

from app.core.settings import settings
from app.services.storage import service as storage_service
from app.services.storage.adapter import LocalFileSystemAdapter
from app.services.storage.key_generator import KeyGenerator


def test_local_put_read_delete(blob_store):
    blob_store.put_object("proposals/p-1/gpoa/a.pdf", b"%PDF-data", "application/pdf")

    assert blob_store.object_exists("proposals/p-1/gpoa/a.pdf")
    assert blob_store.read_object("proposals/p-1/gpoa/a.pdf") == b"%PDF-data"
    assert list(blob_store.iter_object("proposals/p-1/gpoa/a.pdf", chunk_size=4)) == [b"%PDF", b"-dat", b"a"]

    blob_store.delete_object("proposals/p-1/gpoa/a.pdf")
    blob_store.delete_object("proposals/p-1/gpoa/a.pdf")
    assert not blob_store.object_exists("proposals/p-1/gpoa/a.pdf")


def test_put_leaves_no_temp_files(blob_store):
    blob_store.put_object("k/one.pdf", b"%PDF", "application/pdf")

    names = [path.name for path in (blob_store.base_path / "k").iterdir()]
    assert names == ["one.pdf"]


@pytest.mark.parametrize("key", ["../escape.pdf", "/etc/passwd", "a\\b.pdf", "a/../../b.pdf", ""])
def test_local_rejects_unsafe_keys(blob_store, key):
    with pytest.raises(ValueError):
        blob_store.put_object(key, b"x", "application/pdf")
    assert blob_store.object_exists(key) is False


def test_object_key_layout():
    key = KeyGenerator.generate_object_key("p-1", "Chess & Go Society!", "gpoa", "GPOA Final.PDF")

    assert re.fullmatch(r"proposals/p-1/gpoa/Chess_Go_Society_gpoa_[0-9a-f]{32}\.pdf", key)


def test_compliance_key_layout():
    key = KeyGenerator.generate_compliance_key("p-1", "", "Final Report", ".pdf")

    assert re.fullmatch(r"proposals/p-1/compliance/organization_final_report_[0-9a-f]{32}\.pdf", key)


def test_keys_are_unique():
    assert KeyGenerator.generate_object_key("p", "o", "gpoa", ".pdf") != KeyGenerator.generate_object_key(
        "p", "o", "gpoa", ".pdf"
    )


def test_service_returns_local_adapter(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "storage_provider", "local")
    monkeypatch.setattr(settings, "local_upload_dir", str(tmp_path / "uploads"))

    adapter = storage_service.get_storage_adapter()

    assert isinstance(adapter, LocalFileSystemAdapter)
    assert adapter.provider == "local"


def test_service_requires_bucket_for_gcs(monkeypatch):
    monkeypatch.setattr(settings, "storage_provider", "gcs")
    monkeypatch.setattr(settings, "gcs_bucket", None)

    with pytest.raises(ValueError):
        storage_service.get_storage_adapter()
