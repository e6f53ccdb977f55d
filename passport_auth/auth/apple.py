from authlib.integrations.starlette_client import OAuth
from jose import jwt
from pathlib import Path
from starlette.requests import Request
from typing import Any, Dict, Optional
from passport_auth.auth.errors import ConfigurationError
from passport_auth.auth.strategy import OAuth2Strategy
from passport_auth.services.auth_service import VerifyCallback
from passport_auth.utils.config import AppleClientOptions, AppleOptions
import json
import logging
import time

logger = logging.getLogger(__name__)

APPLE_ISSUER = 'https://appleid.apple.com'


class AppleStrategy(OAuth2Strategy):
    '''
    Sign in with Apple. The client secret is a short-lived ES256 JWT signed
    with the team's private key, minted before every token exchange.
    '''

    name = "apple"

    def __init__(
        self,
        options: AppleClientOptions,
        verify: VerifyCallback,
        apple: AppleOptions = AppleOptions(),
        oauth: Optional[OAuth] = None,
    ):
        self.apple = apple
        super().__init__(options, verify, oauth=oauth)

    def initial_client_secret(self) -> Optional[str]:
        return None

    def client_registration(self) -> Dict[str, Any]:
        return {
            'authorize_url': f'{APPLE_ISSUER}/auth/authorize',
            'access_token_url': f'{APPLE_ISSUER}/auth/token',
            'jwks_uri': f'{APPLE_ISSUER}/auth/keys',
            'issuer': APPLE_ISSUER,
            'client_kwargs': {
                'scope': ' '.join(self.apple.scope),
                'token_endpoint_auth_method': 'client_secret_post',
            },
        }

    def authorize_params(self) -> Dict[str, Any]:
        # Apple requires form_post whenever name or email scopes are requested
        return {'response_mode': self.apple.response_mode}

    def private_key(self) -> str:
        if self.options.private_key:
            return self.options.private_key
        if self.options.private_key_location:
            return Path(self.options.private_key_location).read_text()
        raise ConfigurationError("Apple private key is not configured", provider=self.name)

    def client_secret(self, now: Optional[int] = None) -> str:
        now = int(now if now is not None else time.time())
        claims = {
            'iss': self.options.team_id,
            'iat': now,
            'exp': now + self.apple.client_secret_ttl,
            'aud': APPLE_ISSUER,
            'sub': self.options.client_id,
        }
        return jwt.encode(claims, self.private_key(), algorithm='ES256', headers={'kid': self.options.key_id})

    async def fetch_token(self, request: Request) -> Dict[str, Any]:
        self.client.client_secret = self.client_secret()
        return await super().fetch_token(request)

    async def user_profile(self, token: Dict[str, Any], request: Request) -> Dict[str, Any]:
        claims = token.get('userinfo')
        if not claims:
            claims = await self.client.parse_id_token(token, nonce=None)
        claims = dict(claims or {})
        user = await first_login_user(request)
        return profile_from_claims(claims, user)


async def first_login_user(request: Request) -> Dict[str, Any]:
    '''Apple posts the user's name only on the very first authorization.'''
    if request.method != 'POST':
        return {}
    form = await request.form()
    raw = form.get('user')
    if not raw:
        return {}
    try:
        user = json.loads(raw)
    except ValueError:
        logger.warning("Apple callback carried an unreadable 'user' field. Ignoring names.")
        return {}
    return user if isinstance(user, dict) else {}


def profile_from_claims(claims: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    name = user.get('name') or {}
    given_name = name.get('firstName')
    family_name = name.get('lastName')
    display_name = ' '.join(part for part in (given_name, family_name) if part) or None
    return {
        'provider': 'apple',
        'id': claims.get('sub'),
        'email': claims.get('email') or user.get('email'),
        'display_name': display_name,
        'given_name': given_name,
        'family_name': family_name,
        'raw': claims,
    }
