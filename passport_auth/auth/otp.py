from typing import Any, Mapping, Optional
from passport_auth.auth.errors import InvalidOtpCodeError, OtpNotEnabledError, OtpTokenMissingError
from passport_auth.auth.strategy import Strategy
from passport_auth.utils.config import FieldNames, OtpOptions, Phrases
import logging
import pyotp

logger = logging.getLogger(__name__)


class OtpStrategy(Strategy):
    '''
    Second factor. Runs against a user that already passed a first-factor
    strategy; code generation and window tolerance come from pyotp.
    '''

    name = "otp"

    def __init__(self, options: OtpOptions, fields: FieldNames, phrases: Phrases):
        self.options = options
        self.fields = fields
        self.phrases = phrases

    def setup(self, user: Mapping[str, Any]) -> str:
        '''Returns the stored TOTP secret for the user.'''
        if not user.get(self.fields.otp_enabled):
            raise OtpNotEnabledError(self.phrases.otp_not_enabled, provider=self.name)
        secret = user.get(self.fields.otp_token)
        if not secret:
            raise OtpTokenMissingError(self.phrases.otp_token_does_not_exist, provider=self.name)
        return secret

    def totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, interval=self.options.step, issuer=self.options.issuer)

    async def authenticate(self, user: Mapping[str, Any], code: Optional[str] = None, **options: Any) -> Mapping[str, Any]:
        secret = self.setup(user)
        if not code:
            raise InvalidOtpCodeError(self.phrases.invalid_otp_code, provider=self.name)
        if not self.totp(secret).verify(str(code).strip(), valid_window=self.options.window):
            logger.info(f"Rejected OTP code for user {user.get(self.fields.id)}")
            raise InvalidOtpCodeError(self.phrases.invalid_otp_code, provider=self.name)
        return user

    def provisioning_uri(self, user: Mapping[str, Any]) -> str:
        '''otpauth:// URI for enrolling the user's authenticator app.'''
        secret = user.get(self.fields.otp_token)
        if not secret:
            raise OtpTokenMissingError(self.phrases.otp_token_does_not_exist, provider=self.name)
        return self.totp(secret).provisioning_uri(name=user.get(self.fields.email) or str(user.get(self.fields.id)))

    @staticmethod
    def generate_secret() -> str:
        return pyotp.random_base32()
