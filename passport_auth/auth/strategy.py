from authlib.integrations.starlette_client import OAuth
from starlette.requests import Request
from typing import Any, Dict, Optional
from passport_auth.services.auth_service import VerifyCallback
from passport_auth.utils.config import OAuthClientOptions
import logging

logger = logging.getLogger(__name__)


class Strategy:
    '''A pluggable verification procedure for one authentication method.'''

    name: str = ""

    async def authenticate(self, request: Request, **options: Any) -> Any:
        raise NotImplementedError


class OAuth2Strategy(Strategy):
    '''
    Wraps an Authlib client registration. Subclasses describe the provider
    endpoints and turn the token response into profile keys; verification of that
    profile is delegated to the callback supplied at construction.
    '''

    def __init__(self, options: OAuthClientOptions, verify: VerifyCallback, oauth: Optional[OAuth] = None):
        self.options = options
        self._verify = verify
        self.oauth = oauth or OAuth()
        if not options.client_id:
            logger.warning(f"{self.name} strategy enabled without a client ID.")
        self.client = self.oauth.register(
            name=self.name,
            client_id=options.client_id,
            client_secret=self.initial_client_secret(),
            **self.client_registration(),
        )

    def initial_client_secret(self) -> Optional[str]:
        return self.options.client_secret

    def client_registration(self) -> Dict[str, Any]:
        raise NotImplementedError

    def authorize_params(self) -> Dict[str, Any]:
        return {}

    async def authorize_redirect(self, request: Request, **params: Any):
        '''Redirects the browser to the provider; params override the configured ones.'''
        merged = {**self.authorize_params(), **params}
        merged = {k: v for k, v in merged.items() if v is not None}
        return await self.client.authorize_redirect(request, self.options.callback_url, **merged)

    async def fetch_token(self, request: Request) -> Dict[str, Any]:
        return await self.client.authorize_access_token(request)

    async def user_profile(self, token: Dict[str, Any], request: Request) -> Dict[str, Any]:
        raise NotImplementedError

    async def authenticate(self, request: Request, **options: Any) -> Dict[str, Any]:
        '''Handles the provider callback: token exchange, profile fetch, verification.'''
        token = await self.fetch_token(request)
        logger.debug(f"Received token from {self.name}.")
        profile = await self.user_profile(token, request)
        return await self.verify(token.get("access_token"), token.get("refresh_token"), profile)

    async def verify(self, access_token: Optional[str], refresh_token: Optional[str], profile: Any) -> Dict[str, Any]:
        return await self._verify(access_token, refresh_token, profile)
