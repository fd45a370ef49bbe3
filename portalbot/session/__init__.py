"""Portal session lifecycle: login handshake, credential cache, refresh."""

from .credentials import Cookie, CredentialPair
from .login import CAPTCHA_ALPHABET, CaptchaSolver, PortalLoginClient, TesseractCaptchaSolver, normalize_captcha
from .manager import SessionLifecycleManager

__all__ = [
    "Cookie", "CredentialPair",
    "CAPTCHA_ALPHABET", "CaptchaSolver", "PortalLoginClient", "TesseractCaptchaSolver", "normalize_captcha",
    "SessionLifecycleManager",
]
