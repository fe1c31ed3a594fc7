import pytest
from httpx import AsyncClient

from app.core.security import verify_password, get_password_hash, create_access_token, verify_token
from app.domain.identity.models import UserRole

from conftest import TEST_PASSWORD, auth_headers


@pytest.mark.auth
@pytest.mark.integration
class TestAuthentication:
    """Test authentication endpoints and functionality."""

    async def test_register_user_success(self, client: AsyncClient, notifier) -> None:
        """Test successful patient registration."""
        user_data = {
            "email": "NewUser@example.com",
            "password": "Password123",
            "firstName": "New",
            "lastName": "User",
            "phone": "+91 98765 43210",
        }

        response = await client.post("/api/v1/auth/register", json=user_data)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["email"] == "newuser@example.com"
        assert data["firstName"] == "New"
        assert data["role"] == "user"
        assert "password" not in data
        assert "passwordHash" not in data
        assert notifier.templates() == ["welcome"]

    async def test_register_user_duplicate_email(self, client: AsyncClient, seed) -> None:
        """Test registration with duplicate email."""
        user_data = {
            "email": seed.users.patient.email,
            "password": "Password123",
            "firstName": "Different",
            "lastName": "User",
        }

        response = await client.post("/api/v1/auth/register", json=user_data)

        assert response.status_code == 400
        assert "already exists" in response.json()["message"]

    async def test_register_validation_errors(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/register", json={"email": "not-an-email", "password": "1"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation error"
        assert any(error.startswith("email") for error in body["errors"])

    async def test_login_success(self, client: AsyncClient, seed) -> None:
        """Test successful login carries role and lab claims."""
        response = await client.post(
            "/api/v1/auth/login", json={"email": seed.users.tech_a.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["tokenType"] == "bearer"
        payload = verify_token(data["accessToken"])
        assert payload["sub"] == seed.users.tech_a.id
        assert payload["role"] == "lab_technician"
        assert payload["assigned_lab"] == seed.lab_a.id

    async def test_login_invalid_credentials(self, client: AsyncClient, seed) -> None:
        """Test login with invalid credentials."""
        response = await client.post(
            "/api/v1/auth/login", json={"email": seed.users.patient.email, "password": "wrongpassword"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    async def test_login_blocked_account(self, client: AsyncClient, seed) -> None:
        response = await client.post(
            "/api/v1/auth/login", json={"email": seed.users.blocked_staff.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 403

    async def test_get_current_user(self, client: AsyncClient, seed) -> None:
        """Test getting current user information."""
        response = await client.get("/api/v1/auth/me", headers=auth_headers(seed.users.patient))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == seed.users.patient.email
        assert data["id"] == seed.users.patient.id

    async def test_get_current_user_unauthorized(self, client: AsyncClient) -> None:
        """Test getting current user without authentication."""
        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_garbage_token_rejected(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401


@pytest.mark.auth
@pytest.mark.unit
class TestPasswordSecurity:
    """Test password hashing and token helpers."""

    def test_password_hashing(self) -> None:
        """Test password hashing functionality."""
        hashed = get_password_hash(TEST_PASSWORD)

        assert hashed != TEST_PASSWORD
        assert verify_password(TEST_PASSWORD, hashed)
        assert not verify_password("wrong", hashed)

    def test_token_type_checked(self) -> None:
        token = create_access_token("user-1", {"role": UserRole.USER.value})

        assert verify_token(token)["sub"] == "user-1"
        assert verify_token(token, token_type="refresh") is None
