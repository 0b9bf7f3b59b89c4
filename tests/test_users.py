"""
User and profile endpoint tests — registration, profile lookup and the
follow relation the feed is built from.
"""
import pytest
from httpx import AsyncClient

from conftest import api_create_user, auth


# ---------------------------------------------------------------------------
# Create user
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    resp = await async_client.post("/api/users", json={
        "user": {
            "username": "newuser",
            "email": "newuser@example.com",
            "bio": "I am new here",
        },
    })
    assert resp.status_code == 201
    user = resp.json()["user"]
    assert user["username"] == "newuser"
    assert user["email"] == "newuser@example.com"
    assert user["bio"] == "I am new here"
    assert user["image"] is None
    assert isinstance(user["id"], int)


@pytest.mark.asyncio
async def test_create_user_duplicate_username(async_client: AsyncClient):
    await api_create_user(async_client, "taken")
    resp = await async_client.post("/api/users", json={
        "user": {"username": "taken", "email": "other@example.com"},
    })
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_create_user_missing_email(async_client: AsyncClient):
    resp = await async_client.post("/api/users", json={"user": {"username": "noemail"}})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Profiles and following
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_profile(async_client: AsyncClient):
    await api_create_user(async_client, "celebrity")
    resp = await async_client.get("/api/profiles/celebrity")
    assert resp.status_code == 200
    assert resp.json() == {
        "profile": {"username": "celebrity", "bio": None, "image": None, "following": False}
    }


@pytest.mark.asyncio
async def test_get_missing_profile(async_client: AsyncClient):
    resp = await async_client.get("/api/profiles/ghost")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_follow_and_unfollow(async_client: AsyncClient):
    fan = await api_create_user(async_client, "fan")
    await api_create_user(async_client, "idol")

    for _ in range(2):
        resp = await async_client.post("/api/profiles/idol/follow", headers=auth(fan))
        assert resp.status_code == 200
        assert resp.json()["profile"]["following"] is True

    seen = (await async_client.get("/api/profiles/idol", headers=auth(fan))).json()
    assert seen["profile"]["following"] is True

    resp = await async_client.delete("/api/profiles/idol/follow", headers=auth(fan))
    assert resp.status_code == 200
    assert resp.json()["profile"]["following"] is False

    seen = (await async_client.get("/api/profiles/idol", headers=auth(fan))).json()
    assert seen["profile"]["following"] is False


@pytest.mark.asyncio
async def test_follow_requires_known_viewer(async_client: AsyncClient):
    await api_create_user(async_client, "lonely")
    assert (await async_client.post("/api/profiles/lonely/follow")).status_code == 401
    resp = await async_client.post("/api/profiles/lonely/follow", headers=auth(4242))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_cannot_follow_yourself(async_client: AsyncClient):
    me = await api_create_user(async_client, "narcissus")
    resp = await async_client.post("/api/profiles/narcissus/follow", headers=auth(me))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_malformed_viewer_header_is_anonymous(async_client: AsyncClient):
    await api_create_user(async_client, "plain")
    resp = await async_client.get("/api/profiles/plain", headers={"X-User-Id": "not-a-number"})
    assert resp.status_code == 200
    assert resp.json()["profile"]["following"] is False
