import pytest
from httpx import ASGITransport, AsyncClient
from fastapi import status
from unittest.mock import AsyncMock, patch
from passport_auth.db.users import MongoUsers
from passport_auth.main import create_app
from passport_auth.utils.config import Settings


@pytest.mark.asyncio
async def test_default_app_uses_mongo_users():
    '''Without an explicit passport, users come from MongoDB and providers from the environment'''
    with patch("passport_auth.utils.config.settings", Settings(_env_file=None)):
        app = create_app()

    passport = app.state.passport
    assert isinstance(passport.users, MongoUsers)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "Welcome to the Passport Auth API"


@pytest.mark.asyncio
async def test_lifespan_connects_and_indexes_profile_ids():
    with patch("passport_auth.utils.config.settings", Settings(_env_file=None)):
        app = create_app()
    passport = app.state.passport

    with patch("passport_auth.main.connect_to_mongo", new=AsyncMock()) as connect, \
         patch("passport_auth.main.close_mongo_connection", new=AsyncMock()) as close, \
         patch.object(MongoUsers, "create_index", new=AsyncMock()) as create_index:
        async with app.router.lifespan_context(app):
            connect.assert_awaited_once()
        close.assert_awaited_once()

    expected = [passport.config.fields.for_provider(p).profile_id
                for p in passport.config.providers.first_factors() if p != "local"]
    assert [c.args[0] for c in create_index.await_args_list] == expected
