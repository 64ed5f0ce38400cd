import logging
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from .. import schemas, crud, models, errors, storage
from ..dependencies import get_db
from ..auth import get_current_user, require_user_record

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/items",
    tags=["items"],
)


def poster_of(user: Optional[models.User], include_email: bool = False) -> schemas.Poster:
    if user is None:
        return schemas.Poster(username="Unknown", email="" if include_email else None)
    return schemas.Poster(
        id=user.id,
        username=user.username,
        email=user.email if include_email else None,
    )


def required_text(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise errors.ValidationError(f"{field} is required")
    return value


async def remove_item(
        db: AsyncSession,
        blob_storage: Optional[storage.BlobStorage],
        db_item: models.Item
        ) -> None:
    """
    アイテムとそのクレームを削除し、画像をベストエフォートで削除します。

    所有者による削除と管理者による削除の両方から使用されます。
    画像の削除に失敗してもデータベースの削除は取り消されません。
    """
    item_id = db_item.id
    image_urls = await crud.delete_item(db, db_item)
    for url in image_urls:
        await storage.delete_image(blob_storage, url)
    logger.info(f"アイテム {item_id} を削除しました。")


@router.post("/", response_model=schemas.Item, status_code=status.HTTP_201_CREATED)
async def create_item(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    blob_storage: Optional[storage.BlobStorage] = Depends(storage.get_blob_storage),
    current_user: schemas.Identity = Depends(get_current_user)
) -> schemas.Item:
    """
    新しいアイテムを投稿します。

    タイトル・説明・場所は必須です。画像のアップロードに失敗した場合は
    プレースホルダー画像で投稿を続行します。
    """
    title = required_text(title, "title")
    description = required_text(description, "description")
    location = required_text(location, "location")
    owner_id = require_user_record(current_user)

    image_url = await storage.upload_image(blob_storage, image, "lost-items", title)
    try:
        db_item = await crud.create_item(
            db,
            owner_id=owner_id,
            title=title,
            description=description,
            location=location,
            image_url=image_url,
        )
    except SQLAlchemyError:
        # 保存できなかったアイテムの画像は残さない
        await storage.delete_image(blob_storage, image_url)
        raise
    logger.info(f"アイテム {db_item.id} を作成しました（投稿者: {owner_id}、画像: {bool(image_url)}）。")
    return db_item


@router.get("/", response_model=List[schemas.Item])
async def read_items(
    db: AsyncSession = Depends(get_db)
) -> List[schemas.Item]:
    rows = await crud.get_items_with_posters(db)
    return [
        schemas.Item.model_validate(db_item).model_copy(update={"poster": poster_of(user)})
        for db_item, user, _ in rows
    ]


@router.get("/mine", response_model=List[schemas.OwnedItem])
async def read_my_items(
    db: AsyncSession = Depends(get_db),
    current_user: schemas.Identity = Depends(get_current_user)
) -> List[schemas.OwnedItem]:
    if current_user.id is None:
        return []
    rows = await crud.get_items_by_owner(db, owner_id=current_user.id)
    return [
        schemas.OwnedItem.model_validate(db_item).model_copy(update={"claims_count": count})
        for db_item, count in rows
    ]


@router.get("/{item_id}", response_model=schemas.Item)
async def read_item(
    item_id: int,
    db: AsyncSession = Depends(get_db)
) -> schemas.Item:
    row = await crud.get_item_with_poster(db, item_id=item_id)
    if row is None:
        raise errors.NotFound("Item not found")
    db_item, user = row
    return schemas.Item.model_validate(db_item).model_copy(
        update={"poster": poster_of(user, include_email=True)}
    )


@router.delete("/{item_id}", response_model=schemas.Message)
async def delete_item(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    blob_storage: Optional[storage.BlobStorage] = Depends(storage.get_blob_storage),
    current_user: schemas.Identity = Depends(get_current_user)
) -> schemas.Message:
    """
    アイテムを削除します（所有者のみ）。管理者による削除は ``/admin/items`` を使用します。
    """
    db_item = await crud.get_item(db, item_id=item_id)
    if db_item is None:
        raise errors.NotFound("Item not found")
    if current_user.id is None or db_item.posted_by != current_user.id:
        logger.warning(f"ユーザー {current_user.id} によるアイテム {item_id} の削除を拒否しました。")
        raise errors.Forbidden("You can only delete your own items")

    await remove_item(db, blob_storage, db_item)
    return schemas.Message(detail="Item deleted successfully")
