import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from .. import schemas, crud, models, errors, storage
from ..config import settings
from ..dependencies import get_db
from ..auth import require_admin, bootstrap_admin_user
from .items import poster_of, remove_item

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
    responses={403: {"description": "Admin access required"}},
)


async def get_modifiable_user(db: AsyncSession, user_id: int) -> models.User:
    """
    変更対象のユーザーを取得します。

    Raises
    ------
    errors.NotFound
        ユーザーが存在しない場合。
    errors.Protected
        対象が設定上のスーパー管理者である場合。
    """
    db_user = await crud.get_user(db, user_id=user_id)
    if db_user is None:
        raise errors.NotFound("User not found")
    if settings.is_super_admin_email(db_user.email):
        logger.warning(f"スーパー管理者 (id={user_id}) の変更を拒否しました。")
        raise errors.Protected()
    return db_user


@router.get("/items", response_model=List[schemas.AdminItem])
async def read_all_items(
        db: AsyncSession = Depends(get_db)
        ) -> List[schemas.AdminItem]:
    """
    全アイテムをクレーム件数と投稿者の連絡先とともに取得します。

    Returns
    -------
    List[schemas.AdminItem]
        新しい順のアイテムのリスト。
    """
    rows = await crud.get_items_with_posters(db)
    return [
        schemas.AdminItem.model_validate(db_item).model_copy(
            update={"poster": poster_of(user, include_email=True), "claims_count": count}
        )
        for db_item, user, count in rows
    ]


@router.delete("/items/{item_id}", response_model=schemas.Message)
async def delete_any_item(
        item_id: int,
        db: AsyncSession = Depends(get_db),
        blob_storage: Optional[storage.BlobStorage] = Depends(storage.get_blob_storage)
        ) -> schemas.Message:
    """
    所有者に関係なくアイテムを削除します。削除の手順は所有者による削除と同じです。
    """
    db_item = await crud.get_item(db, item_id=item_id)
    if db_item is None:
        raise errors.NotFound("Item not found")
    await remove_item(db, blob_storage, db_item)
    return schemas.Message(detail="Item deleted successfully")


@router.get("/users", response_model=List[schemas.AdminUser])
async def read_all_users(
        db: AsyncSession = Depends(get_db)
        ) -> List[schemas.AdminUser]:
    """
    全ユーザーを投稿数・クレーム数とともに取得します。

    スーパー管理者のユーザー行がない場合は、合成したレコードを先頭に追加します。

    Returns
    -------
    List[schemas.AdminUser]
        新しい順のユーザーのリスト。
    """
    rows = await crud.get_users_with_counts(db)
    users = []
    for db_user, items_count, claims_count in rows:
        user = schemas.AdminUser.model_validate(db_user).model_copy(
            update={"items_count": items_count, "claims_count": claims_count}
        )
        if settings.is_super_admin_email(user.email):
            user.role = models.ROLE_ADMIN
        users.append(user)

    if settings.super_admin_email and not any(settings.is_super_admin_email(u.email) for u in users):
        users.insert(0, schemas.AdminUser(**bootstrap_admin_user().model_dump()))
    return users


@router.delete("/users/{user_id}", response_model=schemas.Message)
async def delete_user(
        user_id: int,
        db: AsyncSession = Depends(get_db),
        blob_storage: Optional[storage.BlobStorage] = Depends(storage.get_blob_storage)
        ) -> schemas.Message:
    """
    ユーザーを削除します。ユーザーのクレームとアイテム（とそのクレーム）も削除されます。

    Raises
    ------
    errors.NotFound
        ユーザーが存在しない場合。
    errors.Protected
        対象がスーパー管理者の場合。
    """
    db_user = await get_modifiable_user(db, user_id)
    email = db_user.email
    image_urls = await crud.delete_user(db, db_user)
    for url in image_urls:
        await storage.delete_image(blob_storage, url)
    logger.info(f"ユーザー '{email}' (id={user_id}) と関連データを削除しました。")
    return schemas.Message(detail="User deleted successfully")


@router.patch("/users/{user_id}/role", response_model=schemas.Message)
async def update_user_role(
        user_id: int,
        role_update: schemas.RoleUpdate,
        db: AsyncSession = Depends(get_db)
        ) -> schemas.Message:
    """
    ユーザーのロールを ``user`` または ``admin`` に変更します。

    Raises
    ------
    errors.ValidationError
        ロールが不正な場合（リクエスト検証で検出されます）。
    errors.NotFound
        ユーザーが存在しない場合。
    errors.Protected
        対象がスーパー管理者の場合。
    """
    db_user = await get_modifiable_user(db, user_id)
    previous = db_user.role
    await crud.update_user_role(db, db_user, role_update.role)
    logger.info(f"ユーザー {user_id} のロールを {previous} から {role_update.role} に変更しました。")
    return schemas.Message(detail=f"User role updated to {role_update.role} successfully")
