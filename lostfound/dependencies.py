from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession
from .database import AsyncSessionLocal

async def get_db() -> AsyncIterator[AsyncSession]:
    """
    データベースセッションを取得するための依存関係。

    リクエストごとに新しいセッションを生成し、レスポンス後にクローズします。

    Yields:
        AsyncSession: データベースセッションオブジェクト。
    """
    async with AsyncSessionLocal() as db:
        yield db
