from typing import Optional


class AuthError(Exception):
    '''Base class for every failure raised while wiring or running a strategy.'''

    code = "AUTH_ERROR"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class ConfigurationError(AuthError):
    code = "CONFIGURATION_ERROR"


class StrategyNotFoundError(AuthError):
    code = "STRATEGY_NOT_FOUND"


class InvalidProfileError(AuthError):
    code = "INVALID_PROFILE"


class InvalidEmailError(InvalidProfileError):
    code = "INVALID_EMAIL"


class ConsentRequiredError(AuthError):
    '''
    Google omits the refresh token on repeat authorizations. Callers should
    send the user back through authorization with prompt=consent.
    '''

    code = "CONSENT_REQUIRED"
    consent_required = True


class OtpError(AuthError):
    code = "OTP_ERROR"


class OtpNotEnabledError(OtpError):
    code = "OTP_NOT_ENABLED"


class OtpTokenMissingError(OtpError):
    code = "OTP_TOKEN_MISSING"


class InvalidOtpCodeError(OtpError):
    code = "INVALID_OTP_CODE"
