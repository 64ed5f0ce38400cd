import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_lost_backpack_is_returned(client: AsyncClient, register, post_item, submit_claim):
    """
    拾ったリュックを投稿し、持ち主のクレームが承認されるまでの一連の流れ。
    """
    finder_headers, finder = await register(username="finder")
    owner_headers, owner = await register(username="owner")
    stranger_headers, _ = await register(username="stranger")

    item = await post_item(finder_headers, title="Blue Backpack", location="Library, 2nd floor")
    listing = (await client.get("/items/")).json()
    assert [i["id"] for i in listing] == [item["id"]]
    assert listing[0]["poster"]["username"] == "finder"

    owner_claim = await submit_claim(owner_headers, item["id"], message="it has my initials BK on the tag")
    stranger_claim = await submit_claim(stranger_headers, item["id"], message="I lost one like that")
    assert owner_claim.status_code == 201
    assert stranger_claim.status_code == 201

    incoming = (await client.get("/claims/my-items", headers=finder_headers)).json()
    assert {c["claimant"]["username"] for c in incoming} == {"owner", "stranger"}
    mine = (await client.get("/items/mine", headers=finder_headers)).json()
    assert mine[0]["claims_count"] == 2

    response = await client.put(f"/claims/{stranger_claim.json()['id']}/reject", headers=finder_headers)
    assert response.status_code == 200
    response = await client.put(f"/claims/{owner_claim.json()['id']}/approve", headers=finder_headers)
    assert response.status_code == 200

    returned = (await client.get(f"/items/{item['id']}")).json()
    assert returned["status"] == "claimed"
    statuses = {c["claimant"]["username"]: c["status"]
                for c in (await client.get("/claims/my-items", headers=finder_headers)).json()}
    assert statuses == {"owner": "approved", "stranger": "rejected"}

    # 引き渡し済みのアイテムには新しいクレームを出せない
    late_headers, _ = await register(username="late")
    late = await submit_claim(late_headers, item["id"])
    assert late.status_code == 409
    assert late.json()["kind"] == "ItemUnavailable"


@pytest.mark.asyncio
async def test_promoted_user_gains_admin_access(client: AsyncClient, register, post_item, admin_headers):
    """
    管理者への昇格と降格が、発行済みのログイントークンにすぐ反映される。
    """
    _, user = await register(username="moderator", password="password123")
    login = await client.post("/auth/login", json={"email": user["email"], "password": "password123"})
    assert login.status_code == 200
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}
    assert (await client.get("/admin/users", headers=headers)).status_code == 403

    response = await client.patch(f"/admin/users/{user['id']}/role", json={"role": "admin"}, headers=admin_headers)
    assert response.status_code == 200

    # ログイントークンを取り直さなくても昇格が反映される
    assert (await client.get("/admin/users", headers=headers)).status_code == 200
    me = (await client.get("/auth/me", headers=headers)).json()
    assert me["role"] == "admin"

    # 昇格したユーザーは他人のアイテムを削除できる
    poster_headers, _ = await register()
    item = await post_item(poster_headers)
    assert (await client.delete(f"/admin/items/{item['id']}", headers=headers)).status_code == 200
    assert (await client.get(f"/items/{item['id']}")).status_code == 404

    # 降格も同じトークンにすぐ反映される
    response = await client.patch(f"/admin/users/{user['id']}/role", json={"role": "user"}, headers=admin_headers)
    assert response.status_code == 200
    response = await client.get("/admin/users", headers=headers)
    assert response.status_code == 403
    assert response.json()["kind"] == "Forbidden"
    assert (await client.get("/auth/me", headers=headers)).json()["role"] == "user"
