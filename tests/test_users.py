"""
User endpoint tests — create, search, list, lookup by id / username,
sparse update with uniqueness checks, follow counts, and the metrics
endpoint.
"""
import pytest
from httpx import AsyncClient

from app.services import user_service


async def _create(client: AsyncClient, username: str, **extra) -> dict:
    payload = {
        "username": username,
        "email": f"{username}@example.com",
        "password": "s3cret",
        **extra,
    }
    resp = await client.post("/api/users", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Create user
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    """Creating a user with all fields returns 201 and the profile, minus the password."""
    resp = await async_client.post("/api/users", json={
        "username": "ada",
        "email": "ada@example.com",
        "password": "analytical",
        "full_name": "Ada Lovelace",
        "bio": "Notes on the engine",
        "role": "MENTOR",
        "specializations": ["maths", "poetry"],
    })
    assert resp.status_code == 201
    user = resp.json()
    assert user["username"] == "ada"
    assert user["email"] == "ada@example.com"
    assert user["full_name"] == "Ada Lovelace"
    assert user["role"] == "MENTOR"
    assert user["specializations"] == ["maths", "poetry"]
    assert "password" not in user
    assert "password_hash" not in user
    assert "id" in user
    assert "created_at" in user


@pytest.mark.asyncio
async def test_create_user_defaults(async_client: AsyncClient):
    user = await _create(async_client, "minimal")
    assert user["role"] == "USER"
    assert user["specializations"] == []
    assert user["bio"] is None


@pytest.mark.asyncio
async def test_create_user_missing_password(async_client: AsyncClient):
    resp = await async_client.post("/api/users", json={
        "username": "nopass", "email": "nopass@example.com",
    })
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_duplicate_username_returns_409(async_client: AsyncClient):
    await _create(async_client, "dup")
    resp = await async_client.post("/api/users", json={
        "username": "dup", "email": "other@example.com", "password": "x",
    })
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_is_case_insensitive_substring(async_client: AsyncClient):
    await _create(async_client, "ChefMaria")
    await _create(async_client, "mariachi_band")
    await _create(async_client, "bob")

    resp = await async_client.get("/api/users/search", params={"query": "MARIA"})
    assert resp.status_code == 200
    names = {u["username"] for u in resp.json()}
    assert names == {"ChefMaria", "mariachi_band"}


@pytest.mark.asyncio
async def test_search_results_hide_email_and_password(async_client: AsyncClient):
    await _create(async_client, "private_person")
    resp = await async_client.get("/api/users/search", params={"query": "private"})
    results = resp.json()
    assert len(results) == 1
    assert results[0]["email"] is None
    assert "password" not in results[0]


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(async_client: AsyncClient):
    await _create(async_client, "plain")
    resp = await async_client.get("/api/users/search", params={"query": "%"})
    assert resp.json() == []


@pytest.mark.asyncio
async def test_search_empty_query_matches_everyone(async_client: AsyncClient):
    await _create(async_client, "anna")
    await _create(async_client, "zed")

    resp = await async_client.get("/api/users/search", params={"query": ""})
    assert resp.status_code == 200
    results = resp.json()
    assert [u["username"] for u in results] == ["anna", "zed"]
    assert all(u["email"] is None for u in results)


@pytest.mark.asyncio
async def test_search_returns_every_match(async_client: AsyncClient, make_user):
    for i in range(55):
        await make_user(f"cook_{i:02d}")
    await make_user("baker")

    resp = await async_client.get("/api/users/search", params={"query": "cook"})
    assert resp.status_code == 200
    names = [u["username"] for u in resp.json()]
    assert len(names) == 55
    assert names == sorted(names)
    assert "baker" not in names


# ---------------------------------------------------------------------------
# List / get
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_users(async_client: AsyncClient):
    assert (await async_client.get("/api/users")).json() == []
    await _create(async_client, "first")
    await _create(async_client, "second")
    users = (await async_client.get("/api/users")).json()
    assert [u["username"] for u in users] == ["first", "second"]
    assert all(u["email"] for u in users)


@pytest.mark.asyncio
async def test_get_user_by_id(async_client: AsyncClient):
    created = await _create(async_client, "lookup")
    resp = await async_client.get(f"/api/users/{created['id']}")
    assert resp.status_code == 200
    assert resp.json()["username"] == "lookup"


@pytest.mark.asyncio
async def test_get_user_not_found_identifies_lookup(async_client: AsyncClient):
    resp = await async_client.get("/api/users/424242")
    assert resp.status_code == 404
    body = resp.json()
    assert body["resource"] == "User"
    assert body["field"] == "id"
    assert body["value"] == "424242"
    assert body["detail"] == "User not found with id : '424242'"


@pytest.mark.asyncio
async def test_get_user_by_username(async_client: AsyncClient):
    await _create(async_client, "by_name")
    resp = await async_client.get("/api/users/username/by_name")
    assert resp.status_code == 200
    assert resp.json()["email"] == "by_name@example.com"


@pytest.mark.asyncio
async def test_get_user_by_username_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/users/username/ghost")
    assert resp.status_code == 404
    assert resp.json()["field"] == "username"
    assert resp.json()["value"] == "ghost"


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_applies_only_present_fields(async_client: AsyncClient):
    created = await _create(
        async_client, "sparse", bio="old bio", full_name="Old Name", specializations=["a"]
    )
    resp = await async_client.put(f"/api/users/{created['id']}", json={
        "bio": "new bio",
        "full_name": None,
    })
    assert resp.status_code == 200
    user = resp.json()
    assert user["bio"] == "new bio"
    assert user["full_name"] == "Old Name"
    assert user["specializations"] == ["a"]
    assert user["username"] == "sparse"
    assert "password" not in user


@pytest.mark.asyncio
async def test_update_all_plain_fields(async_client: AsyncClient):
    created = await _create(async_client, "everything")
    resp = await async_client.put(f"/api/users/{created['id']}", json={
        "role": "ADMIN",
        "full_name": "Every Thing",
        "specializations": ["baking", "welding"],
    })
    user = resp.json()
    assert user["role"] == "ADMIN"
    assert user["full_name"] == "Every Thing"
    assert user["specializations"] == ["baking", "welding"]


@pytest.mark.asyncio
async def test_update_username_taken_returns_400(async_client: AsyncClient):
    await _create(async_client, "taken")
    mine = await _create(async_client, "mine", bio="keep me")

    resp = await async_client.put(f"/api/users/{mine['id']}", json={
        "username": "taken", "bio": "should not apply",
    })
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Username is already taken"

    unchanged = (await async_client.get(f"/api/users/{mine['id']}")).json()
    assert unchanged["username"] == "mine"
    assert unchanged["bio"] == "keep me"


@pytest.mark.asyncio
async def test_update_email_taken_returns_400(async_client: AsyncClient):
    await _create(async_client, "owner")
    mine = await _create(async_client, "other")
    resp = await async_client.put(f"/api/users/{mine['id']}", json={
        "email": "owner@example.com",
    })
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email is already registered"


@pytest.mark.asyncio
async def test_update_username_claimed_concurrently_returns_400(async_client: AsyncClient, monkeypatch):
    await _create(async_client, "winner")
    mine = await _create(async_client, "loser")

    # The pre-check sees no owner, as if the other writer had not committed yet.
    async def _nobody(db, column, value):
        return None

    monkeypatch.setattr(user_service, "_find_by", _nobody)
    resp = await async_client.put(f"/api/users/{mine['id']}", json={"username": "winner"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Username or email is already taken"
    monkeypatch.undo()

    unchanged = (await async_client.get(f"/api/users/{mine['id']}")).json()
    assert unchanged["username"] == "loser"


@pytest.mark.asyncio
async def test_update_to_own_username_and_email_succeeds(async_client: AsyncClient):
    mine = await _create(async_client, "same")
    resp = await async_client.put(f"/api/users/{mine['id']}", json={
        "username": "same", "email": "same@example.com",
    })
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_update_to_unused_username(async_client: AsyncClient):
    mine = await _create(async_client, "before")
    resp = await async_client.put(f"/api/users/{mine['id']}", json={"username": "after"})
    assert resp.status_code == 200
    assert resp.json()["username"] == "after"
    assert (await async_client.get("/api/users/username/after")).status_code == 200


@pytest.mark.asyncio
async def test_update_missing_user_returns_404(async_client: AsyncClient):
    resp = await async_client.put("/api/users/999", json={"bio": "x"})
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Counts / follows
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_counts_three_followers_none_following(async_client: AsyncClient, make_user, make_follow):
    star = await make_user("star")
    for _ in range(3):
        await make_follow(await make_user(), star)

    resp = await async_client.get(f"/api/users/{star.id}/counts")
    assert resp.status_code == 200
    assert resp.json() == {"followers": 3, "following": 0}


@pytest.mark.asyncio
async def test_counts_for_unknown_user_are_zero(async_client: AsyncClient):
    resp = await async_client.get("/api/users/31337/counts")
    assert resp.json() == {"followers": 0, "following": 0}


@pytest.mark.asyncio
async def test_follow_and_unfollow(async_client: AsyncClient):
    a = await _create(async_client, "alice")
    b = await _create(async_client, "bruno")

    resp = await async_client.post(f"/api/users/{a['id']}/following/{b['id']}")
    assert resp.status_code == 201
    # idempotent
    await async_client.post(f"/api/users/{a['id']}/following/{b['id']}")

    assert (await async_client.get(f"/api/users/{a['id']}/counts")).json() == {
        "followers": 0, "following": 1,
    }
    assert (await async_client.get(f"/api/users/{b['id']}/counts")).json() == {
        "followers": 1, "following": 0,
    }

    resp = await async_client.delete(f"/api/users/{a['id']}/following/{b['id']}")
    assert resp.status_code == 204
    resp = await async_client.delete(f"/api/users/{a['id']}/following/{b['id']}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_follow_self_rejected(async_client: AsyncClient):
    a = await _create(async_client, "narcissus")
    resp = await async_client.post(f"/api/users/{a['id']}/following/{a['id']}")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_follow_missing_user_returns_404(async_client: AsyncClient):
    a = await _create(async_client, "lonely")
    resp = await async_client.post(f"/api/users/{a['id']}/following/9999")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Metrics / health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_metrics_endpoint(async_client: AsyncClient, make_post, make_user, make_follow):
    await make_post(likes=2, comments=1)
    await make_follow(await make_user(), await make_user())

    resp = await async_client.get("/api/metrics")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_posts"] == 1
    assert data["total_likes"] == 2
    assert data["total_comments"] == 1
    assert data["total_follows"] == 1
    assert data["avg_likes_per_post"] == 2.0
    assert data["live_updates"]["connected"] is False


@pytest.mark.asyncio
async def test_response_headers(async_client: AsyncClient):
    resp = await async_client.get("/health", headers={"X-Request-Id": "abc123"})
    assert resp.status_code == 200
    assert resp.headers["x-request-id"] == "abc123"
    assert "x-response-time-ms" in resp.headers
    assert "x-query-count" in resp.headers
