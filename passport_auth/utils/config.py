from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, ConfigDict, Field
from pathlib import Path
from dotenv import load_dotenv
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
import copy

# .env lives in the project root, two levels up from passport_auth/utils/
env_path = Path(__file__).parent.parent.parent / '.env'
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    '''Environment-driven defaults. Every value can be overridden per Passport.'''

    # Provider switches
    auth_local_enabled: bool = Field(False, alias='AUTH_LOCAL_ENABLED')
    auth_google_enabled: bool = Field(False, alias='AUTH_GOOGLE_ENABLED')
    auth_github_enabled: bool = Field(False, alias='AUTH_GITHUB_ENABLED')
    auth_apple_enabled: bool = Field(False, alias='AUTH_APPLE_ENABLED')
    auth_otp_enabled: bool = Field(False, alias='AUTH_OTP_ENABLED')

    # Google OAuth2
    google_client_id: Optional[str] = Field(None, alias='GOOGLE_CLIENT_ID')
    google_client_secret: Optional[str] = Field(None, alias='GOOGLE_CLIENT_SECRET')
    google_callback_url: Optional[str] = Field(None, alias='GOOGLE_CALLBACK_URL')

    # GitHub OAuth2
    github_client_id: Optional[str] = Field(None, alias='GITHUB_CLIENT_ID')
    github_client_secret: Optional[str] = Field(None, alias='GITHUB_CLIENT_SECRET')
    github_callback_url: Optional[str] = Field(None, alias='GITHUB_CALLBACK_URL')

    # Sign in with Apple
    apple_client_id: Optional[str] = Field(None, alias='APPLE_CLIENT_ID')
    apple_team_id: Optional[str] = Field(None, alias='APPLE_TEAM_ID')
    apple_key_id: Optional[str] = Field(None, alias='APPLE_KEY_ID')
    apple_callback_url: Optional[str] = Field(None, alias='APPLE_CALLBACK_URL')
    apple_private_key: Optional[str] = Field(None, alias='APPLE_PRIVATE_KEY')
    apple_private_key_location: Optional[str] = Field(None, alias='APPLE_PRIVATE_KEY_LOCATION')

    # One-time passwords
    otp_code_field: str = Field('passcode', alias='AUTH_OTP_CODE_FIELD')
    otp_step: int = Field(30, alias='AUTH_OTP_STEP')
    otp_window: int = Field(1, alias='AUTH_OTP_WINDOW')
    otp_issuer: str = Field('passport-auth', alias='AUTH_OTP_ISSUER')

    # Host application
    mongo_uri: str = Field('mongodb://localhost:27017/passport_auth', alias='MONGO_URI')
    app_secret_key: str = Field('change-me', alias='APP_SECRET_KEY')

    model_config = SettingsConfigDict(
        env_file=str(env_path),
        env_file_encoding='utf-8',
        case_sensitive=True,
        env_ignore_empty=True,
        extra='ignore',
    )


# Create a single instance to be imported elsewhere
settings = Settings()


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')


class ProviderFlags(_Frozen):
    local: bool = False
    google: bool = False
    github: bool = False
    apple: bool = False
    otp: bool = False

    def first_factors(self) -> List[str]:
        return [name for name in ('local', 'google', 'github', 'apple') if getattr(self, name)]


class OAuthClientOptions(_Frozen):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    callback_url: Optional[str] = None


class AppleClientOptions(OAuthClientOptions):
    team_id: Optional[str] = None
    key_id: Optional[str] = None
    private_key: Optional[str] = None
    private_key_location: Optional[str] = None


class StrategyCredentials(_Frozen):
    google: OAuthClientOptions = OAuthClientOptions()
    github: OAuthClientOptions = OAuthClientOptions()
    apple: AppleClientOptions = AppleClientOptions()


class GoogleOptions(_Frozen):
    access_type: str = 'offline'
    # Google only re-issues a refresh token on a forced consent screen
    prompt: Optional[str] = 'consent'
    scope: List[str] = ['openid', 'email', 'profile']


class GitHubOptions(_Frozen):
    scope: List[str] = ['user:email']


class AppleOptions(_Frozen):
    scope: List[str] = ['name', 'email']
    response_mode: str = 'form_post'
    # Apple caps client secrets at six months.
    client_secret_ttl: int = 86400 * 180


class OtpOptions(_Frozen):
    code_field: str = 'passcode'
    step: int = 30
    window: int = 1
    issuer: str = 'passport-auth'


class ProviderFields(_Frozen):
    profile_id: str
    access_token: str
    refresh_token: str


class FieldNames(_Frozen):
    '''Logical user attributes mapped to the keys the caller stores them under.'''

    id: str = 'id'
    email: str = 'email'
    display_name: str = 'display_name'
    given_name: str = 'given_name'
    family_name: str = 'family_name'
    avatar_url: str = 'avatar_url'
    google_profile_id: str = 'google_profile_id'
    google_access_token: str = 'google_access_token'
    google_refresh_token: str = 'google_refresh_token'
    github_profile_id: str = 'github_profile_id'
    github_access_token: str = 'github_access_token'
    github_refresh_token: str = 'github_refresh_token'
    apple_profile_id: str = 'apple_profile_id'
    apple_access_token: str = 'apple_access_token'
    apple_refresh_token: str = 'apple_refresh_token'
    otp_enabled: str = 'otp_enabled'
    otp_token: str = 'otp_token'
    last_login_at: str = 'last_login_at'

    def for_provider(self, provider: str) -> ProviderFields:
        return ProviderFields(
            profile_id=getattr(self, f"{provider}_profile_id"),
            access_token=getattr(self, f"{provider}_access_token"),
            refresh_token=getattr(self, f"{provider}_refresh_token"),
        )


class Phrases(_Frozen):
    users_not_defined: str = 'Users object not defined'
    no_first_factor: str = 'No first factor authentication strategy enabled'
    local_strategy_missing: str = 'Users object must define create_strategy() to enable local authentication'
    strategy_not_found: str = 'Authentication strategy is not registered'
    invalid_profile_response: str = 'Invalid profile response'
    invalid_email: str = 'Invalid email address'
    consent_required: str = 'Consent required'
    otp_not_enabled: str = 'OTP authentication is not enabled'
    otp_token_does_not_exist: str = 'OTP token does not exist for validation'
    invalid_otp_code: str = 'Invalid OTP code'


class PassportConfig(_Frozen):
    providers: ProviderFlags = ProviderFlags()
    strategies: StrategyCredentials = StrategyCredentials()
    google: GoogleOptions = GoogleOptions()
    github: GitHubOptions = GitHubOptions()
    apple: AppleOptions = AppleOptions()
    otp: OtpOptions = OtpOptions()
    fields: FieldNames = FieldNames()
    phrases: Phrases = Phrases()
    serialize_user: Optional[Callable[[Any], Any]] = None
    deserialize_user: Optional[Callable[[Any], Any]] = None


def default_config(source: Optional[Settings] = None) -> Dict[str, Any]:
    '''Builds the default configuration tree from environment settings.'''
    source = source or settings
    return {
        'providers': {
            'local': source.auth_local_enabled,
            'google': source.auth_google_enabled,
            'github': source.auth_github_enabled,
            'apple': source.auth_apple_enabled,
            'otp': source.auth_otp_enabled,
        },
        'strategies': {
            'google': {
                'client_id': source.google_client_id,
                'client_secret': source.google_client_secret,
                'callback_url': source.google_callback_url,
            },
            'github': {
                'client_id': source.github_client_id,
                'client_secret': source.github_client_secret,
                'callback_url': source.github_callback_url,
            },
            'apple': {
                'client_id': source.apple_client_id,
                'team_id': source.apple_team_id,
                'key_id': source.apple_key_id,
                'callback_url': source.apple_callback_url,
                'private_key': source.apple_private_key,
                'private_key_location': source.apple_private_key_location,
            },
        },
        'otp': {
            'code_field': source.otp_code_field,
            'step': source.otp_step,
            'window': source.otp_window,
            'issuer': source.otp_issuer,
        },
    }


def deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    '''
    Merges overrides into a copy of base. Nested mappings merge key by key,
    any other value (lists included) replaces the base value wholesale.
    '''
    merged = copy.deepcopy(dict(base))
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_config(
    overrides: Union[PassportConfig, Mapping[str, Any], None] = None,
    source: Optional[Settings] = None,
) -> PassportConfig:
    '''Applies caller overrides on top of the defaults and freezes the result.'''
    if isinstance(overrides, PassportConfig):
        return overrides
    merged = deep_merge(default_config(source), overrides or {})
    return PassportConfig.model_validate(merged)
