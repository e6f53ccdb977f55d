from datetime import datetime, timezone
from inspect import isawaitable
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional
from pydantic import EmailStr, HttpUrl, TypeAdapter, ValidationError
from passport_auth.auth.errors import ConsentRequiredError, InvalidEmailError, InvalidProfileError
from passport_auth.models.user import Profile, UserRecord, Users
from passport_auth.utils.config import PassportConfig
import logging

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)
_url_adapter = TypeAdapter(HttpUrl)

NAME_KEYS = ("display_name", "given_name", "family_name")

VerifyCallback = Callable[[Optional[str], Optional[str], Any], Awaitable[Dict[str, Any]]]


async def resolve(value):
    '''Awaits collaborator results that may be either plain or awaitable.'''
    if isawaitable(value):
        return await value
    return value


def is_valid_email(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        _email_adapter.validate_python(value)
        return True
    except ValidationError:
        return False


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        _url_adapter.validate_python(value)
        return True
    except ValidationError:
        return False


def strip_size_param(url: str) -> str:
    # Google appends ?sz=<pixels> to avatar URLs
    return url.split("?sz=")[0]


def parse_profile(profile: Any, config: PassportConfig, provider: str) -> Profile:
    '''Validates the provider payload; a missing or blank id is an invalid profile.'''
    if isinstance(profile, Profile):
        return profile
    if not isinstance(profile, Mapping):
        raise InvalidProfileError(config.phrases.invalid_profile_response, provider=provider)
    try:
        return Profile.model_validate(profile)
    except ValidationError as e:
        logger.warning(f"Rejected {provider} profile: {e.error_count()} validation error(s)")
        raise InvalidProfileError(config.phrases.invalid_profile_response, provider=provider) from e


def extract_email(profile: Profile, provider: str) -> Optional[str]:
    if provider == "apple":
        return profile.email if is_valid_email(profile.email) else None
    for entry in profile.emails:
        # Unverified addresses must not link to an existing account by email
        if entry.verified is False:
            continue
        if is_valid_email(entry.value):
            return entry.value
    return None


def profile_photo(profile: Profile) -> Optional[str]:
    for entry in profile.photos:
        if isinstance(entry.value, str) and entry.value:
            return entry.value
    return None


def merge_profile(
    user: UserRecord,
    profile: Profile,
    config: PassportConfig,
    provider: str,
    access_token: Optional[str],
    refresh_token: Optional[str],
) -> bool:
    '''
    Copies provider data onto the stored user. Names and avatar are set-once so
    user edits survive later logins; IDs and tokens follow the provider.
    Returns True when a field changed.
    '''
    fields = config.fields
    changed = False

    for key in NAME_KEYS:
        target = getattr(fields, key)
        value = getattr(profile, key)
        if not user.get(target) and value:
            user[target] = value
            changed = True

    photo = profile_photo(profile)
    if not is_valid_url(user.get(fields.avatar_url)) and photo:
        photo = strip_size_param(photo)
        if is_valid_url(photo):
            user[fields.avatar_url] = photo
            changed = True

    provider_fields = fields.for_provider(provider)
    for target, value in (
        (provider_fields.profile_id, profile.id),
        (provider_fields.access_token, access_token),
        (provider_fields.refresh_token, refresh_token),
    ):
        if value and user.get(target) != value:
            user[target] = value
            changed = True

    return changed


async def verify_profile(
    users: Users,
    config: PassportConfig,
    provider: str,
    access_token: Optional[str],
    refresh_token: Optional[str],
    profile: Any,
) -> Dict[str, Any]:
    '''
    Finds or creates the user behind a provider profile and merges the profile
    into it. Returns the saved user as a plain dict.
    '''
    fields = config.fields
    profile = parse_profile(profile, config, provider)
    email = extract_email(profile, provider)
    profile_id_field = fields.for_provider(provider).profile_id

    # Profile IDs survive email changes at the provider, so they are matched first
    user = await resolve(users.find_one({profile_id_field: profile.id}))

    if not user and email:
        logger.info(f"No user with {provider} profile ID {profile.id}. Checking by email.")
        user = await resolve(users.find_one({fields.email: email}))
        if user:
            logger.info(f"Linking {provider} profile {profile.id} to existing user by email.")

    if not user:
        if not email:
            raise InvalidEmailError(config.phrases.invalid_email, provider=provider)
        logger.info(f"Creating new user via {provider}: profile ID={profile.id}")
        user = await resolve(users.new({fields.email: email, profile_id_field: profile.id}))

    if merge_profile(user, profile, config, provider, access_token, refresh_token):
        logger.debug(f"Updated {provider} fields for profile {profile.id}")

    # The login timestamp always moves, so every successful login is saved
    user[fields.last_login_at] = datetime.now(timezone.utc)
    await resolve(user.save())

    # Google only re-issues refresh tokens when the user is re-prompted for consent
    if provider == "google" and not refresh_token:
        logger.info(f"Google login for profile {profile.id} returned no refresh token; consent required.")
        raise ConsentRequiredError(config.phrases.consent_required, provider=provider)

    return user.to_dict()


def build_verify(users: Users, config: PassportConfig, provider: str) -> VerifyCallback:
    '''Binds verify_profile to one provider for use as a strategy callback.'''

    async def verify(access_token: Optional[str], refresh_token: Optional[str], profile: Any) -> Dict[str, Any]:
        return await verify_profile(users, config, provider, access_token, refresh_token, profile)

    verify.__name__ = f"verify_{provider}"
    return verify
