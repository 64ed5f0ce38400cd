"""
画像ファイルの保存先（ブロブストレージ）。

アイテム画像とクレームの証明画像はここを経由して保存・削除されます。
ストレージが未設定、またはアップロードに失敗した場合はプレースホルダーの参照を返し、
投稿そのものは失敗させません。
"""
import logging
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import UploadFile

from .config import settings

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "/placeholder.svg"


class BlobStorage(ABC):
    """キーでバイナリを保存・削除するストレージのインターフェース。"""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """データを保存し、参照用URLを返します。"""

    @abstractmethod
    async def delete(self, url: str) -> None:
        """``put`` が返したURLのデータを削除します。"""


class LocalBlobStorage(BlobStorage):
    """ローカルファイルシステムに保存する実装。"""

    def __init__(self, base_path: str, base_url: str = "/uploads"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")

    def _key_to_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise ValueError(f"Invalid blob key: {key}")
        return path

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._key_to_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"{self.base_url}/{key}"

    async def delete(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise ValueError(f"URL is not managed by this storage: {url}")
        path = self._key_to_path(url[len(prefix):])
        if path.exists():
            path.unlink()


def get_blob_storage() -> Optional[BlobStorage]:
    """
    ブロブストレージを取得するための依存関係。

    ``BLOB_STORAGE_PATH`` が未設定の場合はNoneを返し、画像はプレースホルダーになります。
    """
    if not settings.blob_storage_path:
        return None
    return LocalBlobStorage(settings.blob_storage_path, settings.blob_base_url)


def placeholder_url(text: str) -> str:
    return f"{PLACEHOLDER_PREFIX}?height=400&width=600&text={quote(text[:30])}&time={int(time.time() * 1000)}"


def is_placeholder(url: Optional[str]) -> bool:
    return not url or url.startswith(PLACEHOLDER_PREFIX)


async def upload_image(
        storage: Optional[BlobStorage],
        upload: Optional[UploadFile],
        folder: str,
        label: str
        ) -> Optional[str]:
    """
    アップロードされた画像を保存し、保存先の参照を返します。

    Parameters
    ----------
    storage : Optional[BlobStorage]
        保存先。Noneの場合はプレースホルダーを返します。
    upload : Optional[UploadFile]
        アップロードされたファイル。未指定または空の場合はNoneを返します。
    folder : str
        キーの接頭辞（例: ``lost-items``、``claim-proofs``）。
    label : str
        プレースホルダーに表示するテキスト。

    Returns
    -------
    Optional[str]
        画像の参照。アップロードに失敗した場合もプレースホルダーを返します。
    """
    if upload is None or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None

    if storage is None:
        logger.warning("ブロブストレージが未設定のため、プレースホルダー画像を使用します。")
        return placeholder_url(label)

    extension = upload.filename.rsplit(".", 1)[-1].lower() if "." in upload.filename else ""
    extension = "".join(c for c in extension if c.isalnum())[:10] or "jpg"
    key = f"{folder}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{extension}"
    try:
        url = await storage.put(key, data, upload.content_type or "application/octet-stream")
    except (OSError, ValueError) as e:
        logger.error(f"画像のアップロードに失敗しました: {e}")
        return placeholder_url(label)
    logger.info(f"画像をアップロードしました: {url}")
    return url


async def delete_image(storage: Optional[BlobStorage], url: Optional[str]) -> bool:
    """
    画像を削除します。失敗してもログに記録するだけで例外は送出しません。

    Returns
    -------
    bool
        削除を実行できた場合はTrue。プレースホルダーやストレージ未設定、失敗時はFalse。
    """
    if storage is None or is_placeholder(url):
        return False
    try:
        await storage.delete(url)
    except (OSError, ValueError) as e:
        logger.error(f"画像の削除に失敗しました（処理は続行します）: {url}: {e}")
        return False
    logger.info(f"画像を削除しました: {url}")
    return True
