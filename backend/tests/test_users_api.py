"""
User API tests
"""
import pytest
from httpx import AsyncClient

from metaplatform.models import User
from metaplatform.utils.password import verify_password


class TestUserCRUD:
    """User CRUD"""

    @pytest.mark.asyncio
    async def test_create_user(self, client: AsyncClient, db_session):
        response = await client.post("/api/v1/users", json={
            "email": "New.Person@Example.com",
            "password": "hunter22",
            "first_name": "New",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new.person@example.com"
        assert data["role"] == "user"
        assert "password" not in data

        stored = db_session.query(User).filter(User.id == data["id"]).first()
        assert stored.password != "hunter22"
        assert verify_password("hunter22", stored.password)

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client: AsyncClient, user):
        response = await client.post("/api/v1/users", json={
            "email": "OWNER@example.com",
            "password": "hunter22",
        })

        assert response.status_code == 409
        assert response.json()["error"]["message"] == "User with this email already exists"

    @pytest.mark.asyncio
    async def test_invalid_role(self, client: AsyncClient):
        response = await client.post("/api/v1/users", json={
            "email": "x@example.com",
            "password": "hunter22",
            "role": "superuser",
        })

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_with_search(self, client: AsyncClient, user, other_user):
        response = await client.get("/api/v1/users", params={"search": "olive"})

        assert response.status_code == 200
        assert [u["email"] for u in response.json()] == ["owner@example.com"]

    @pytest.mark.asyncio
    async def test_update_user(self, client: AsyncClient, user):
        response = await client.put(f"/api/v1/users/{user.id}", json={"dark_mode": True, "first_name": None})

        assert response.status_code == 200
        assert response.json()["dark_mode"] is True
        assert response.json()["first_name"] == "Olive"

    @pytest.mark.asyncio
    async def test_delete_user_removes_owned_data(self, client: AsyncClient, user, bot, db_session):
        response = await client.delete(f"/api/v1/users/{user.id}")

        assert response.status_code == 200
        assert response.json() == {"message": "User deleted successfully"}

        missing = await client.get(f"/api/v1/users/{user.id}")
        assert missing.status_code == 404
