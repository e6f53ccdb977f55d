import pyotp
import pytest
from httpx import ASGITransport, AsyncClient
from fastapi import status
from starlette.responses import RedirectResponse
from unittest.mock import AsyncMock
from passport_auth.auth.errors import ConsentRequiredError, InvalidEmailError
from passport_auth.auth.strategy import Strategy
from passport_auth.main import API_PREFIX, create_app
from passport_auth.passport import Passport
from conftest import FakeUsers

AUTH_URL_PREFIX = f"{API_PREFIX}/auth"
SECRET = "JBSWY3DPEHPK3PXP"
CREDENTIALS = {"client_id": "test", "client_secret": "thisSecret", "callback_url": "http://test/callback"}


class LocalStrategy(Strategy):
    name = "local"

    def __init__(self, users):
        self.users = users

    async def authenticate(self, request, **options):
        body = await request.json()
        return await self.users.find_one({"email": body["email"]})


class UsersWithLocal(FakeUsers):
    def create_strategy(self):
        return LocalStrategy(self)


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def github_passport(env_settings):
    users = FakeUsers([{"id": "1", "email": "a@x.com", "display_name": "Robert"}])
    return Passport(users, {"providers": {"github": True, "google": True},
                            "strategies": {"github": CREDENTIALS, "google": CREDENTIALS}}, env_settings)


@pytest.fixture
def otp_passport(env_settings):
    users = UsersWithLocal([{"id": "1", "email": "a@x.com", "otp_enabled": True, "otp_token": SECRET}])
    return Passport(users, {"providers": {"local": True, "otp": True}}, env_settings)


@pytest.mark.asyncio
async def test_read_root(github_passport):
    async with _client(create_app(github_passport)) as client:
        response = await client.get("/")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "Welcome to the Passport Auth API", "strategies": ["github", "google"]}


@pytest.mark.asyncio
async def test_login_redirects_to_provider(github_passport):
    strategy = github_passport.strategies["github"]
    strategy.client.authorize_redirect = AsyncMock(return_value=RedirectResponse("https://github.com/login/oauth/authorize"))

    async with _client(create_app(github_passport)) as client:
        response = await client.get(f"{AUTH_URL_PREFIX}/github", follow_redirects=False)

    assert response.status_code == status.HTTP_307_TEMPORARY_REDIRECT
    assert "github.com" in response.headers["location"]
    strategy.client.authorize_redirect.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_provider_is_not_found(github_passport):
    async with _client(create_app(github_passport)) as client:
        response = await client.get(f"{AUTH_URL_PREFIX}/apple")
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_callback_logs_user_in(github_passport):
    github_passport.strategies["github"].authenticate = AsyncMock(return_value={"id": "1", "email": "a@x.com"})

    async with _client(create_app(github_passport)) as client:
        response = await client.get(f"{AUTH_URL_PREFIX}/github/callback")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"user": "1", "otp_required": False}

        me = await client.get(f"{API_PREFIX}/users/me")

    assert me.status_code == status.HTTP_200_OK
    assert me.json() == {"id": "1", "email": "a@x.com", "display_name": "Robert", "avatar_url": None}


@pytest.mark.asyncio
async def test_callback_consent_required_redirects_with_prompt(github_passport):
    strategy = github_passport.strategies["google"]
    strategy.authenticate = AsyncMock(side_effect=ConsentRequiredError("Consent required", provider="google"))
    strategy.client.authorize_redirect = AsyncMock(
        return_value=RedirectResponse("https://accounts.google.com/o/oauth2/auth?prompt=consent")
    )

    async with _client(create_app(github_passport)) as client:
        response = await client.get(f"{AUTH_URL_PREFIX}/google/callback", follow_redirects=False)

    assert response.status_code == status.HTTP_307_TEMPORARY_REDIRECT
    assert "prompt=consent" in response.headers["location"]
    _, kwargs = strategy.client.authorize_redirect.await_args
    assert kwargs == {"access_type": "offline", "prompt": "consent"}


@pytest.mark.asyncio
async def test_callback_auth_error_is_unauthorized(github_passport):
    github_passport.strategies["github"].authenticate = AsyncMock(
        side_effect=InvalidEmailError("Invalid email address", provider="github")
    )
    async with _client(create_app(github_passport)) as client:
        response = await client.get(f"{AUTH_URL_PREFIX}/github/callback")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"detail": "Invalid email address"}


@pytest.mark.asyncio
async def test_users_me_requires_session(github_passport):
    async with _client(create_app(github_passport)) as client:
        response = await client.get(f"{API_PREFIX}/users/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_deleted_user_invalidates_session(github_passport):
    github_passport.strategies["github"].authenticate = AsyncMock(return_value={"id": "1"})
    async with _client(create_app(github_passport)) as client:
        await client.get(f"{AUTH_URL_PREFIX}/github/callback")
        github_passport.users.records.clear()
        response = await client.get(f"{API_PREFIX}/users/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_local_login_then_otp(otp_passport):
    async with _client(create_app(otp_passport)) as client:
        response = await client.post(f"{AUTH_URL_PREFIX}/local", json={"email": "a@x.com"})
        assert response.json() == {"user": "1", "otp_required": True}

        me = await client.get(f"{API_PREFIX}/users/me")
        assert me.status_code == status.HTTP_401_UNAUTHORIZED
        assert me.json() == {"detail": "OTP verification required"}

        code = pyotp.TOTP(SECRET).now()
        response = await client.post(f"{AUTH_URL_PREFIX}/otp", json={"passcode": code})
        assert response.status_code == status.HTTP_200_OK

        me = await client.get(f"{API_PREFIX}/users/me")
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["email"] == "a@x.com"


@pytest.mark.asyncio
async def test_otp_wrong_code_is_unauthorized(otp_passport):
    async with _client(create_app(otp_passport)) as client:
        await client.post(f"{AUTH_URL_PREFIX}/local", json={"email": "a@x.com"})
        response = await client.post(f"{AUTH_URL_PREFIX}/otp", data={"passcode": ""})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"detail": "Invalid OTP code"}


@pytest.mark.asyncio
async def test_otp_without_login_is_unauthorized(otp_passport):
    async with _client(create_app(otp_passport)) as client:
        response = await client.post(f"{AUTH_URL_PREFIX}/otp", json={"passcode": "123456"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_local_login_unknown_user(otp_passport):
    async with _client(create_app(otp_passport)) as client:
        response = await client.post(f"{AUTH_URL_PREFIX}/local", json={"email": "nobody@x.com"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.asyncio
async def test_otp_rejects_non_object_json(otp_passport):
    async with _client(create_app(otp_passport)) as client:
        await client.post(f"{AUTH_URL_PREFIX}/local", json={"email": "a@x.com"})
        response = await client.post(f"{AUTH_URL_PREFIX}/otp", json=["123456"])
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"detail": "Expected a JSON object."}


@pytest.mark.asyncio
async def test_apple_session_cookie_survives_cross_site_post(env_settings):
    users = FakeUsers([{"id": "1", "email": "a@x.com"}])
    passport = Passport(users, {"providers": {"apple": True},
                                "strategies": {"apple": {**CREDENTIALS, "team_id": "T"}}}, env_settings)
    passport.strategies["apple"].authenticate = AsyncMock(return_value={"id": "1", "email": "a@x.com"})

    async with _client(create_app(passport)) as client:
        response = await client.post(f"{AUTH_URL_PREFIX}/apple/callback", data={"code": "c", "state": "s"})

    assert response.status_code == status.HTTP_200_OK
    cookie = response.headers["set-cookie"].lower()
    assert "samesite=none" in cookie
    assert "; secure" in cookie


@pytest.mark.asyncio
async def test_session_cookie_is_lax_without_apple(github_passport):
    github_passport.strategies["github"].authenticate = AsyncMock(return_value={"id": "1", "email": "a@x.com"})

    async with _client(create_app(github_passport)) as client:
        response = await client.get(f"{AUTH_URL_PREFIX}/github/callback")

    cookie = response.headers["set-cookie"].lower()
    assert "samesite=lax" in cookie
    assert "; secure" not in cookie
