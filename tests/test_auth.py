"""Tests for authentication endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from firebase_admin import auth
from httpx import AsyncClient

from app.core.security import decode_access_token
from app.models.users import user_path


@pytest.mark.asyncio
async def test_signup_creates_profile(client: AsyncClient, store):
    """Sign-up registers with Firebase and stores an empty profile."""
    record = MagicMock(uid="new-uid")
    with patch("app.services.auth_service.create_firebase_user", return_value=record) as mock_create:
        response = await client.post(
            "/api/v1/auth/signup",
            json={"email": "new@example.com", "password": "secret123", "display_name": "Newt"},
        )

    assert response.status_code == 201
    mock_create.assert_called_once_with("new@example.com", "secret123", "Newt")
    data = response.json()
    assert data["user"] == {"uid": "new-uid", "display_name": "Newt", "email": "new@example.com"}

    claims = decode_access_token(data["access_token"])
    assert claims["sub"] == "new-uid"
    assert claims["name"] == "Newt"

    profile = (await store.get(user_path("new-uid"))).data
    assert profile["currentTable"] is None
    assert profile["tableHistory"] == []


@pytest.mark.asyncio
async def test_signup_existing_email(client: AsyncClient):
    error = auth.EmailAlreadyExistsError("exists", None, None)
    with patch("app.services.auth_service.create_firebase_user", side_effect=error):
        response = await client.post(
            "/api/v1/auth/signup",
            json={"email": "dup@example.com", "password": "secret123", "display_name": "Dup"},
        )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_signup_short_password(client: AsyncClient):
    response = await client.post(
        "/api/v1/auth/signup",
        json={"email": "new@example.com", "password": "123", "display_name": "Newt"},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login(client: AsyncClient, creator):
    sign_in = AsyncMock(return_value={"localId": creator.uid, "displayName": "Cora Creator"})
    with patch("app.services.auth_service.sign_in_with_password", sign_in):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": creator.email, "password": "secret123"},
        )

    assert response.status_code == 200
    assert response.json()["user"]["uid"] == creator.uid
    assert response.json()["user"]["display_name"] == "Cora Creator"


@pytest.mark.asyncio
async def test_login_rejected(client: AsyncClient):
    sign_in = AsyncMock(side_effect=ValueError("INVALID_LOGIN_CREDENTIALS"))
    with patch("app.services.auth_service.sign_in_with_password", sign_in):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "who@example.com", "password": "wrong"},
        )

    assert response.status_code == 401
    assert "INVALID_LOGIN_CREDENTIALS" in response.json()["message"]


@pytest.mark.asyncio
async def test_firebase_verify_creates_profile_on_first_login(client: AsyncClient, store):
    verify = AsyncMock(return_value={"uid": "fb-uid", "email": "fb@example.com", "name": "Fiona"})
    with patch("app.services.auth_service.verify_firebase_token", verify):
        response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "token"})

    assert response.status_code == 200
    assert response.json()["user"]["uid"] == "fb-uid"
    assert (await store.get(user_path("fb-uid"))).data["displayName"] == "Fiona"


@pytest.mark.asyncio
async def test_firebase_verify_invalid_token(client: AsyncClient):
    verify = AsyncMock(side_effect=ValueError("Token verification failed: expired"))
    with patch("app.services.auth_service.verify_firebase_token", verify):
        response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "bad"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_and_logout(client: AsyncClient, creator):
    """A refresh token works until it is revoked by logout."""
    verify = AsyncMock(return_value={"uid": creator.uid, "email": creator.email})
    with patch("app.services.auth_service.verify_firebase_token", verify):
        response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "token"})
    refresh_token = response.json()["refresh_token"]

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 200
    assert decode_access_token(response.json()["access_token"])["name"] == "Cora Creator"

    response = await client.post("/api/v1/auth/logout", json={"refresh_token": refresh_token})
    assert response.status_code == 204

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


@pytest.mark.asyncio
async def test_access_token_cannot_refresh(client: AsyncClient, auth_headers: dict):
    access_token = auth_headers["Authorization"].removeprefix("Bearer ")

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access_token})

    assert response.status_code == 401
