from fastapi import APIRouter, HTTPException, status, Request
from fastapi.responses import JSONResponse
from typing import Mapping
from authlib.integrations.base_client.errors import OAuthError
from passport_auth.auth.errors import AuthError, ConsentRequiredError, StrategyNotFoundError
from passport_auth.auth.strategy import OAuth2Strategy
from passport_auth.passport import Passport
import logging

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"
SESSION_OTP_KEY = "otp_verified"


def _oauth_strategy(passport: Passport, provider: str) -> OAuth2Strategy:
    try:
        strategy = passport.get_strategy(provider)
    except StrategyNotFoundError:
        strategy = None
    if not isinstance(strategy, OAuth2Strategy):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{provider} login is not configured.")
    return strategy


def _log_in(passport: Passport, request: Request, user) -> JSONResponse:
    identifier = passport.serialize_user(user)
    otp_required = passport.otp_required(user)
    request.session[SESSION_USER_KEY] = identifier
    request.session[SESSION_OTP_KEY] = not otp_required
    return JSONResponse(content={"user": identifier, "otp_required": otp_required})


def create_auth_router(passport: Passport) -> APIRouter:
    '''
    HTTP endpoints for the registered strategies. The host app must install
    Starlette's SessionMiddleware; Authlib keeps OAuth state there too.
    '''
    router = APIRouter(prefix="/auth", tags=["Authentication"])

    @router.post("/otp", summary="Verify the one-time password second factor")
    async def verify_otp(request: Request):
        identifier = request.session.get(SESSION_USER_KEY)
        if identifier is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged in.")
        user = await passport.deserialize_user(identifier)
        if not user:
            request.session.clear()
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged in.")

        if request.headers.get("content-type", "").startswith("application/json"):
            data = await request.json()
            if not isinstance(data, Mapping):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected a JSON object.")
        else:
            data = await request.form()
        code = data.get(passport.config.otp.code_field)

        try:
            await passport.authenticate("otp", user, code=code)
        except StrategyNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="OTP is not configured.")
        except AuthError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)

        request.session[SESSION_OTP_KEY] = True
        return JSONResponse(content={"user": identifier, "otp_required": False})

    @router.get("/{provider}", summary="Initiate OAuth2 login")
    async def login(provider: str, request: Request):
        '''Redirects the user to the provider's authorization page.'''
        strategy = _oauth_strategy(passport, provider)
        return await strategy.authorize_redirect(request)

    @router.post("/{provider}", summary="Log in with a non-redirect strategy")
    async def login_direct(provider: str, request: Request):
        try:
            strategy = passport.get_strategy(provider)
        except StrategyNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{provider} login is not configured.")
        if isinstance(strategy, OAuth2Strategy) or provider == "otp":
            raise HTTPException(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, detail=f"{provider} login requires a redirect.")
        try:
            user = await strategy.authenticate(request)
        except AuthError as e:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials.")
        return _log_in(passport, request, user)

    @router.api_route("/{provider}/callback", methods=["GET", "POST"], summary="Handle OAuth2 callback")
    async def callback(provider: str, request: Request):
        '''
        Finishes the provider login. Apple posts its callback (form_post),
        the other providers redirect with a GET.
        '''
        strategy = _oauth_strategy(passport, provider)
        try:
            user = await strategy.authenticate(request)
        except ConsentRequiredError:
            logger.info(f"{provider} requires consent. Redirecting to re-authorize with prompt=consent.")
            return await strategy.authorize_redirect(request, prompt="consent")
        except AuthError as e:
            logger.warning(f"{provider} login rejected: {e.message}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
        except OAuthError as error:
            logger.error(f"OAuth Error during {provider} callback: {error.description} (Error: {error.error})")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Authentication failed via {provider}: {error.error or error.description}")

        logger.info(f"{provider} callback successful.")
        return _log_in(passport, request, user)

    return router
