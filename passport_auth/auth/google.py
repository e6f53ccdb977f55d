from authlib.integrations.starlette_client import OAuth
from starlette.requests import Request
from typing import Any, Dict, Optional
from passport_auth.auth.strategy import OAuth2Strategy
from passport_auth.services.auth_service import VerifyCallback
from passport_auth.utils.config import GoogleOptions, OAuthClientOptions
import logging

logger = logging.getLogger(__name__)


class GoogleStrategy(OAuth2Strategy):
    name = "google"

    def __init__(
        self,
        options: OAuthClientOptions,
        verify: VerifyCallback,
        google: GoogleOptions = GoogleOptions(),
        oauth: Optional[OAuth] = None,
    ):
        self.google = google
        super().__init__(options, verify, oauth=oauth)

    def client_registration(self) -> Dict[str, Any]:
        return {
            'server_metadata_url': 'https://accounts.google.com/.well-known/openid-configuration',
            'client_kwargs': {'scope': ' '.join(self.google.scope)},
        }

    def authorize_params(self) -> Dict[str, Any]:
        # access_type=offline is what makes Google hand out refresh tokens
        return {'access_type': self.google.access_type, 'prompt': self.google.prompt}

    async def user_profile(self, token: Dict[str, Any], request: Request) -> Dict[str, Any]:
        userinfo = token.get('userinfo')
        if not userinfo:
            userinfo = await self.client.userinfo(token=token)
        userinfo = dict(userinfo or {})
        return profile_from_userinfo(userinfo)


def profile_from_userinfo(userinfo: Dict[str, Any]) -> Dict[str, Any]:
    '''Maps OpenID Connect userinfo claims onto profile keys.'''
    emails = []
    if userinfo.get('email'):
        emails.append({'value': userinfo['email'], 'verified': userinfo.get('email_verified')})
    photos = [{'value': userinfo['picture']}] if userinfo.get('picture') else []
    return {
        'provider': 'google',
        'id': userinfo.get('sub'),
        'display_name': userinfo.get('name'),
        'given_name': userinfo.get('given_name'),
        'family_name': userinfo.get('family_name'),
        'emails': emails,
        'photos': photos,
        'raw': userinfo,
    }
