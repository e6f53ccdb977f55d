from passport_auth.auth.errors import (
    AuthError,
    ConfigurationError,
    ConsentRequiredError,
    InvalidEmailError,
    InvalidOtpCodeError,
    InvalidProfileError,
    OtpError,
    OtpNotEnabledError,
    OtpTokenMissingError,
    StrategyNotFoundError,
)
from passport_auth.passport import Passport
from passport_auth.utils.config import PassportConfig, Settings, resolve_config

__all__ = [
    "AuthError",
    "ConfigurationError",
    "ConsentRequiredError",
    "InvalidEmailError",
    "InvalidOtpCodeError",
    "InvalidProfileError",
    "OtpError",
    "OtpNotEnabledError",
    "OtpTokenMissingError",
    "Passport",
    "PassportConfig",
    "Settings",
    "StrategyNotFoundError",
    "resolve_config",
]
