"""
Time-based one-time passwords (RFC 6238).

generate() is a pure function of its arguments; it keeps no state and is safe
to call on every refresh tick. Code computation is delegated to pyotp.
"""

import math
import time
import datetime
from typing import NamedTuple, Optional, Union

import pyotp

from . import config
from .models import Algorithm, encode_secret


class TotpCode(NamedTuple):
    """A live code and how many seconds it stays valid."""
    code: str
    seconds_remaining: int


def time_counter(unix_time: Union[int, float], period: int) -> int:
    """Number of whole periods elapsed since the Unix epoch."""
    return int(math.floor(unix_time)) // period


def seconds_remaining(unix_time: Union[int, float], period: int) -> int:
    """Seconds until the code for ``unix_time`` rolls over."""
    return period - int(math.floor(unix_time)) % period


def hotp(secret: Union[bytes, bytearray], counter: int, digits: int,
         algorithm: Algorithm) -> str:
    """HMAC-based one-time password for a single counter value (RFC 4226)."""
    return pyotp.HOTP(encode_secret(secret), digits=digits, digest=algorithm.digest).at(counter)


def generate(secret: Union[bytes, bytearray], unix_time: Optional[Union[int, float]] = None,
             digits: int = config.TOTP_DEFAULT_DIGITS,
             period: int = config.TOTP_DEFAULT_PERIOD,
             algorithm: Union[Algorithm, str] = Algorithm.SHA1) -> TotpCode:
    """
    Compute the TOTP code for a secret at a point in time.

    Args:
        secret: Raw key bytes (already base32 decoded)
        unix_time: Seconds since the epoch; read from the system clock when None
        digits: Code length
        period: Time step in seconds
        algorithm: HMAC hash

    Returns:
        TotpCode with the zero padded code and the seconds left in the window
    """
    if not secret:
        raise ValueError("Secret must not be empty")
    if digits < 1 or digits > 10:
        raise ValueError(f"Digits must be between 1 and 10, got {digits}")
    if period < 1:
        raise ValueError(f"Period must be positive, got {period}")
    if unix_time is None:
        unix_time = time.time()
    if unix_time < 0:
        raise ValueError("Time must not be before the Unix epoch")

    algorithm = Algorithm.parse(algorithm)
    totp = pyotp.TOTP(encode_secret(secret), digits=digits, digest=algorithm.digest, interval=period)
    # An aware datetime keeps pyotp on the UTC path, independent of local DST
    at = datetime.datetime.fromtimestamp(int(math.floor(unix_time)), datetime.timezone.utc)
    return TotpCode(totp.at(at), seconds_remaining(unix_time, period))
