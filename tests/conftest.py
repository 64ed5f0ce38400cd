import os

# アプリケーションの設定を読み込む前にテスト用の環境変数を設定
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PASSWORD_SECRET"] = "test-password-secret"
os.environ["SUPER_ADMIN_EMAIL"] = "superadmin@example.com"
os.environ["SUPER_ADMIN_PASSWORD"] = "super-admin-password"
os.environ["SUPER_ADMIN_USERNAME"] = "admin"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("BLOB_STORAGE_PATH", None)

import pytest
import pytest_asyncio
import uuid
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from lostfound.main import app
from lostfound.dependencies import get_db
from lostfound.database import Base
from lostfound.storage import get_blob_storage

SUPER_ADMIN_EMAIL = os.environ["SUPER_ADMIN_EMAIL"]
SUPER_ADMIN_PASSWORD = os.environ["SUPER_ADMIN_PASSWORD"]


@pytest_asyncio.fixture
async def engine(tmp_path):
    # テストごとに一時ディレクトリのSQLiteデータベースを使用
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()

@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

@pytest_asyncio.fixture
async def db_session(session_factory):
    # 非同期セッションを生成
    async with session_factory() as session:
        yield session

@pytest_asyncio.fixture
async def client(session_factory):
    # リクエストごとに新しいセッションを渡すよう依存関係をオーバーライド
    async def _override_get_db():
        async with session_factory() as session:
            yield session
    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_blob_storage] = lambda: None
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture
def unique_email():
    """ユニークなメールアドレスを生成するフィクスチャ"""
    return f"user_{uuid.uuid4().hex[:12]}@example.com"

@pytest.fixture
def register(client):
    """ユーザーを登録し、認証ヘッダーとユーザー情報を返す関数を提供するフィクスチャ"""
    async def _register(username=None, email=None, password="password123"):
        suffix = uuid.uuid4().hex[:8]
        response = await client.post(
            "/auth/register",
            json={
                "username": username or f"user_{suffix}",
                "email": email or f"user_{suffix}@example.com",
                "password": password,
            },
        )
        assert response.status_code == 201, f"ユーザー登録に失敗しました: {response.text}"
        data = response.json()
        return {"Authorization": f"Bearer {data['access_token']}"}, data["user"]
    return _register

@pytest.fixture
def post_item(client):
    """アイテムを投稿し、作成されたアイテムを返す関数を提供するフィクスチャ"""
    async def _post_item(headers, title="Blue Backpack", description="Navy blue backpack with a laptop inside",
                         location="Library, 2nd floor", files=None):
        response = await client.post(
            "/items/",
            data={"title": title, "description": description, "location": location},
            files=files,
            headers=headers,
        )
        assert response.status_code == 201, f"アイテムの作成に失敗しました: {response.text}"
        return response.json()
    return _post_item

@pytest.fixture
def submit_claim(client):
    """クレームを提出し、レスポンスを返す関数を提供するフィクスチャ"""
    async def _submit_claim(headers, item_id, message="it has my initials BK on the tag", files=None):
        return await client.post(
            "/claims/",
            data={"item_id": str(item_id), "message": message},
            files=files,
            headers=headers,
        )
    return _submit_claim

@pytest_asyncio.fixture
async def admin_headers(client):
    """設定上のスーパー管理者としてログインした認証ヘッダー"""
    response = await client.post(
        "/auth/login",
        json={"email": SUPER_ADMIN_EMAIL, "password": SUPER_ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
