from fastapi import Depends, FastAPI
from contextlib import asynccontextmanager
from starlette.middleware.sessions import SessionMiddleware
from typing import Optional
from passport_auth.db.database import connect_to_mongo, close_mongo_connection
from passport_auth.db.users import MongoUsers
from passport_auth.dependencies import get_current_user, get_passport
from passport_auth.passport import Passport
from passport_auth.routes.auth import create_auth_router
from passport_auth.utils.config import settings
import logging
import uvicorn

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(passport: Optional[Passport] = None) -> FastAPI:
    '''
    Example host application. Without an explicit passport, users live in
    MongoDB and providers come from the environment.
    '''
    use_mongo = passport is None
    users = MongoUsers() if use_mongo else None
    if use_mongo:
        passport = Passport(users)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup...")
        if use_mongo:
            await connect_to_mongo()
            # Uniqueness for concurrent first logins lives in storage
            for provider in passport.config.providers.first_factors():
                if provider != "local":
                    await users.create_index(passport.config.fields.for_provider(provider).profile_id)
        yield
        logger.info("Application shutdown...")
        if use_mongo:
            await close_mongo_connection()

    app = FastAPI(
        lifespan=lifespan,
        title="Passport Auth",
        description="OAuth2 (Google, GitHub, Apple), local and OTP login wired over a pluggable user store.",
        version="0.1.0",
    )
    app.state.passport = passport
    if passport.config.providers.apple:
        # Apple posts its callback cross-site (form_post); a lax cookie would not come back
        app.add_middleware(SessionMiddleware, secret_key=settings.app_secret_key, same_site="none", https_only=True)
    else:
        app.add_middleware(SessionMiddleware, secret_key=settings.app_secret_key)

    @app.get("/", tags=["Root"])
    async def read_root():
        '''Basic health check or welcome endpoint.'''
        return {"message": "Welcome to the Passport Auth API", "strategies": sorted(passport.strategies)}

    @app.get(f"{API_PREFIX}/users/me", tags=["Users"])
    async def read_users_me(user=Depends(get_current_user), passport: Passport = Depends(get_passport)):
        fields = passport.config.fields
        return {
            "id": passport.serialize_user(user),
            "email": user.get(fields.email),
            "display_name": user.get(fields.display_name),
            "avatar_url": user.get(fields.avatar_url),
        }

    app.include_router(create_auth_router(passport), prefix=API_PREFIX)
    return app


if __name__ == "__main__":
    logger.info("Starting Uvicorn server...")
    uvicorn.run(
        "passport_auth.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
