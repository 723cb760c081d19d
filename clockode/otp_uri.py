"""
otpauth:// provisioning URIs and the QR codes that carry them.

Format (Key Uri Format used by authenticator apps)::

    otpauth://totp/Issuer:account?secret=BASE32&issuer=Issuer&algorithm=SHA1&digits=6&period=30

Parsing and building go through pyotp; this module adds the Clockode
defaults and turns the result into validated accounts.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import pyotp

from . import config
from .errors import StorageIOError, ValidationError
from .models import Account, encode_secret

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_LABEL = "Imported Entry"


@dataclass
class OtpUri:
    """The fields of a parsed provisioning URI, before account validation."""
    secret: str
    account_name: Optional[str] = None
    issuer: Optional[str] = None
    algorithm: str = config.TOTP_DEFAULT_ALGORITHM
    digits: int = config.TOTP_DEFAULT_DIGITS
    period: int = config.TOTP_DEFAULT_PERIOD

    @classmethod
    def parse(cls, uri: str) -> 'OtpUri':
        """
        Raises:
            ValidationError: On a wrong scheme or OTP type, a missing secret,
                an unknown parameter, non-integer digits/period, or an issuer
                that differs between the label and the parameters.
        """
        try:
            otp = pyotp.parse_uri(uri.strip())
        except ValueError as e:
            raise ValidationError(f"Invalid otpauth URI: {e}") from None
        if not isinstance(otp, pyotp.TOTP):
            raise ValidationError(f"Invalid OTP type: only {config.OTPAUTH_TYPE} is supported")

        name = (otp.name or '').strip()
        issuer = (otp.issuer or '').strip()
        return cls(
            secret=otp.secret,
            account_name=name or None,
            issuer=issuer or None,
            algorithm=otp.digest().name.upper(),
            digits=otp.digits,
            period=otp.interval,
        )

    def to_account(self) -> Account:
        """Build a new account (fresh id) from the URI fields."""
        return Account(
            label=self.account_name or self.issuer or DEFAULT_IMPORT_LABEL,
            issuer=self.issuer,
            secret=self.secret,
            digits=self.digits,
            period=self.period,
            algorithm=self.algorithm,
        )


def uri_to_account(uri: str) -> Account:
    return OtpUri.parse(uri).to_account()


def account_to_uri(account: Account) -> str:
    """Provisioning URI for an account. Colons are stripped from the label parts."""
    totp = pyotp.TOTP(
        encode_secret(account.secret),
        digits=account.digits,
        digest=account.algorithm.digest,
        interval=account.period,
    )
    issuer = account.issuer.replace(':', '') if account.issuer else None
    return totp.provisioning_uri(name=account.label.replace(':', ''), issuer_name=issuer or None)


def read_qr_from_file(filepath: str) -> Account:
    """
    Decode the first QR code in an image file into a new account.

    Raises:
        StorageIOError: If the file cannot be read.
        ValidationError: If the file is not an image, holds no QR code, or
            the QR code is not a valid otpauth URI.
    """
    import cv2
    import numpy as np

    try:
        with open(filepath, 'rb') as f:
            data = f.read()
    except OSError as e:
        raise StorageIOError(f"Cannot read image {filepath}: {e}") from e

    if not data:
        raise ValidationError(f"Image file is empty: {filepath}")
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
    if image is None:
        raise ValidationError(f"Not a readable image: {filepath}")
    content, _points, _ = cv2.QRCodeDetector().detectAndDecode(image)
    if not content:
        raise ValidationError("No QR code found in image")
    logger.info(f"Decoded QR code from {filepath}")
    return uri_to_account(content)
