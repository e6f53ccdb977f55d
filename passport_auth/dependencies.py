from fastapi import Depends, HTTPException, status, Request
from typing import Any, Optional
from passport_auth.passport import Passport
from passport_auth.routes.auth import SESSION_OTP_KEY, SESSION_USER_KEY
import logging

logger = logging.getLogger(__name__)


def get_passport(request: Request) -> Passport:
    return request.app.state.passport


async def get_current_user(request: Request, passport: Passport = Depends(get_passport)) -> Any:
    '''
    Dependency returning the logged-in user. The session must carry a user
    identifier that still resolves, with any required second factor passed.
    '''
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    identifier = request.session.get(SESSION_USER_KEY)
    if identifier is None:
        raise credentials_exception

    user = await passport.deserialize_user(identifier)
    if not user:
        # Stored user is gone: drop the stale session
        request.session.clear()
        raise credentials_exception

    if not request.session.get(SESSION_OTP_KEY, False):
        logger.info(f"User {identifier} has not completed OTP verification.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="OTP verification required")
    return user


async def get_optional_current_user(request: Request, passport: Passport = Depends(get_passport)) -> Optional[Any]:
    try:
        return await get_current_user(request, passport)
    except HTTPException:
        return None
