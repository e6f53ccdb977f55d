from authlib.integrations.starlette_client import OAuth
from starlette.requests import Request
from typing import Any, Dict, List, Optional
from passport_auth.auth.strategy import OAuth2Strategy
from passport_auth.services.auth_service import VerifyCallback
from passport_auth.utils.config import GitHubOptions, OAuthClientOptions
import logging

logger = logging.getLogger(__name__)


class GitHubStrategy(OAuth2Strategy):
    name = "github"

    def __init__(
        self,
        options: OAuthClientOptions,
        verify: VerifyCallback,
        github: GitHubOptions = GitHubOptions(),
        oauth: Optional[OAuth] = None,
    ):
        self.github = github
        super().__init__(options, verify, oauth=oauth)

    def client_registration(self) -> Dict[str, Any]:
        return {
            'access_token_url': 'https://github.com/login/oauth/access_token',
            'authorize_url': 'https://github.com/login/oauth/authorize',
            'api_base_url': 'https://api.github.com/',
            'client_kwargs': {'scope': ' '.join(self.github.scope)},
        }

    async def user_profile(self, token: Dict[str, Any], request: Request) -> Dict[str, Any]:
        resp = await self.client.get('user', token=token)
        resp.raise_for_status()
        data = resp.json()
        emails = []
        if data.get('email'):
            emails.append({'value': data['email'], 'primary': True})
        else:
            # Users with a private email only expose it through user/emails (needs user:email)
            logger.info("GitHub user has no public email. Fetching user/emails.")
            resp = await self.client.get('user/emails', token=token)
            resp.raise_for_status()
            emails = sort_emails(resp.json())
        return profile_from_user(data, emails)


def sort_emails(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    '''Orders GitHub email entries primary-first, then verified.'''
    emails = [
        {'value': entry.get('email'), 'primary': entry.get('primary'), 'verified': entry.get('verified')}
        for entry in entries or []
        if isinstance(entry, dict)
    ]
    return sorted(emails, key=lambda e: (not e['primary'], not e['verified']))


def profile_from_user(data: Dict[str, Any], emails: List[Dict[str, Any]]) -> Dict[str, Any]:
    photos = [{'value': data['avatar_url']}] if data.get('avatar_url') else []
    return {
        'provider': 'github',
        'id': data.get('id'),
        'username': data.get('login'),
        'display_name': data.get('name'),
        'emails': emails,
        'photos': photos,
        'raw': data,
    }
