from types import MappingProxyType
from typing import Any, Mapping, Optional, Union
from authlib.integrations.starlette_client import OAuth
from passport_auth.auth.apple import AppleStrategy
from passport_auth.auth.errors import ConfigurationError, StrategyNotFoundError
from passport_auth.auth.github import GitHubStrategy
from passport_auth.auth.google import GoogleStrategy
from passport_auth.auth.otp import OtpStrategy
from passport_auth.auth.strategy import Strategy
from passport_auth.models.user import Users
from passport_auth.services.auth_service import build_verify, resolve
from passport_auth.utils.config import PassportConfig, Settings, resolve_config
import logging

logger = logging.getLogger(__name__)


class Passport:
    '''
    Registers the authentication strategies enabled in the configuration
    against a Users collaborator, and exposes the session hooks a host
    application needs (serialize_user / deserialize_user).

    Everything is decided at construction time; the resolved configuration is
    immutable afterwards.
    '''

    def __init__(
        self,
        users: Optional[Users],
        config: Union[PassportConfig, Mapping[str, Any], None] = None,
        settings: Optional[Settings] = None,
    ):
        self.config = resolve_config(config, settings)
        phrases = self.config.phrases
        providers = self.config.providers

        if users is None:
            raise ConfigurationError(phrases.users_not_defined)
        if providers.otp and not providers.first_factors():
            raise ConfigurationError(phrases.no_first_factor)
        if providers.local and not callable(getattr(users, 'create_strategy', None)):
            raise ConfigurationError(phrases.local_strategy_missing, provider='local')

        self.users = users
        self.oauth = OAuth()
        self._strategies = {}
        self._register_strategies()

    def _register_strategies(self) -> None:
        config = self.config
        providers = config.providers
        credentials = config.strategies

        if providers.local:
            strategy = self.users.create_strategy()
            self.use(strategy, getattr(strategy, 'name', None) or 'local')

        if providers.google:
            self.use(GoogleStrategy(
                credentials.google, build_verify(self.users, config, 'google'),
                google=config.google, oauth=self.oauth,
            ))

        if providers.github:
            self.use(GitHubStrategy(
                credentials.github, build_verify(self.users, config, 'github'),
                github=config.github, oauth=self.oauth,
            ))

        if providers.apple:
            self.use(AppleStrategy(
                credentials.apple, build_verify(self.users, config, 'apple'),
                apple=config.apple, oauth=self.oauth,
            ))

        if providers.otp:
            self.use(OtpStrategy(config.otp, config.fields, config.phrases))

        logger.info(f"Registered authentication strategies: {', '.join(self._strategies) or 'none'}")

    @property
    def strategies(self) -> Mapping[str, Strategy]:
        return MappingProxyType(self._strategies)

    def use(self, strategy: Strategy, name: Optional[str] = None) -> "Passport":
        name = name or getattr(strategy, 'name', None)
        if not name:
            raise ConfigurationError("Authentication strategies must have a name")
        self._strategies[name] = strategy
        return self

    def unuse(self, name: str) -> "Passport":
        self._strategies.pop(name, None)
        return self

    def get_strategy(self, name: str) -> Strategy:
        try:
            return self._strategies[name]
        except KeyError:
            raise StrategyNotFoundError(self.config.phrases.strategy_not_found, provider=name) from None

    async def authenticate(self, name: str, request: Any, **options: Any) -> Any:
        return await self.get_strategy(name).authenticate(request, **options)

    def otp_required(self, user: Mapping[str, Any]) -> bool:
        '''True when a second factor must follow this user's first-factor login.'''
        return 'otp' in self._strategies and bool(user.get(self.config.fields.otp_enabled))

    def serialize_user(self, user: Mapping[str, Any]) -> Any:
        if self.config.serialize_user:
            return self.config.serialize_user(user)
        return user[self.config.fields.id]

    async def deserialize_user(self, identifier: Any) -> Any:
        '''
        Returns the stored user, or False when nothing matches so the host
        can drop the session. Lookup errors propagate.
        '''
        if self.config.deserialize_user:
            return await resolve(self.config.deserialize_user(identifier))
        user = await resolve(self.users.find_one({self.config.fields.id: identifier}))
        if not user:
            logger.info(f"Session user {identifier} no longer exists. Invalidating session.")
            return False
        return user
