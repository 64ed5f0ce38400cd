import io
import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from lostfound import storage
from lostfound.config import settings
from lostfound.storage import LocalBlobStorage


def make_upload(filename, data, content_type="image/jpeg"):
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class FailingStorage(LocalBlobStorage):
    async def put(self, key, data, content_type="application/octet-stream"):
        raise OSError("disk full")

    async def delete(self, url):
        raise OSError("permission denied")


@pytest.mark.asyncio
async def test_local_storage_put_and_delete(tmp_path):
    blob_storage = LocalBlobStorage(str(tmp_path), base_url="/files/")
    url = await blob_storage.put("lost-items/a.jpg", b"data")
    assert url == "/files/lost-items/a.jpg"
    assert (tmp_path / "lost-items" / "a.jpg").read_bytes() == b"data"

    await blob_storage.delete(url)
    assert not (tmp_path / "lost-items" / "a.jpg").exists()
    # 存在しないファイルの削除はエラーにならない
    await blob_storage.delete(url)


@pytest.mark.asyncio
async def test_local_storage_rejects_path_traversal(tmp_path):
    blob_storage = LocalBlobStorage(str(tmp_path / "blobs"))
    with pytest.raises(ValueError):
        await blob_storage.put("../outside.txt", b"data")
    with pytest.raises(ValueError):
        await blob_storage.delete("/elsewhere/file.jpg")


def test_get_blob_storage(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "blob_storage_path", None)
    assert storage.get_blob_storage() is None

    monkeypatch.setattr(settings, "blob_storage_path", str(tmp_path))
    blob_storage = storage.get_blob_storage()
    assert isinstance(blob_storage, LocalBlobStorage)
    assert blob_storage.base_url == settings.blob_base_url


def test_placeholder_url():
    url = storage.placeholder_url("A very long title that exceeds thirty characters")
    assert url.startswith("/placeholder.svg?height=400&width=600&text=")
    assert "text=A%20very%20long%20title%20that%20exceeds&time=" in url
    assert storage.is_placeholder(url)
    assert storage.is_placeholder(None)
    assert not storage.is_placeholder("/uploads/lost-items/a.jpg")


@pytest.mark.asyncio
async def test_upload_image(tmp_path):
    blob_storage = LocalBlobStorage(str(tmp_path))
    url = await storage.upload_image(blob_storage, make_upload("../../evil.J?PG", b"bytes"), "lost-items", "Keys")
    assert url.startswith("/uploads/lost-items/")
    assert url.endswith(".jpg")
    assert (tmp_path / url[len("/uploads/"):]).read_bytes() == b"bytes"


@pytest.mark.asyncio
async def test_upload_image_without_file(tmp_path):
    blob_storage = LocalBlobStorage(str(tmp_path))
    assert await storage.upload_image(blob_storage, None, "lost-items", "Keys") is None
    assert await storage.upload_image(blob_storage, make_upload("empty.jpg", b""), "lost-items", "Keys") is None


@pytest.mark.asyncio
async def test_upload_image_falls_back_to_placeholder(tmp_path):
    url = await storage.upload_image(None, make_upload("a.jpg", b"bytes"), "lost-items", "Keys")
    assert url.startswith("/placeholder.svg?")

    url = await storage.upload_image(FailingStorage(str(tmp_path)), make_upload("a.jpg", b"bytes"), "claim-proofs", "Proof")
    assert url.startswith("/placeholder.svg?")
    assert "text=Proof" in url


@pytest.mark.asyncio
async def test_delete_image(tmp_path):
    blob_storage = LocalBlobStorage(str(tmp_path))
    url = await blob_storage.put("lost-items/a.jpg", b"data")

    assert await storage.delete_image(blob_storage, url) is True
    assert await storage.delete_image(blob_storage, storage.placeholder_url("x")) is False
    assert await storage.delete_image(blob_storage, None) is False
    assert await storage.delete_image(None, url) is False


@pytest.mark.asyncio
async def test_delete_image_failure_is_not_raised(tmp_path):
    assert await storage.delete_image(FailingStorage(str(tmp_path)), "/uploads/lost-items/a.jpg") is False
