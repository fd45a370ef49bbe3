"""One-shot browser login handshake that yields a credential pair."""
import asyncio
import io
import logging
import re
from typing import Any, AsyncContextManager, Callable, Optional, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from portalbot.config import BrowserConfig, PortalConfig
from portalbot.errors import LoginError
from portalbot.session.credentials import CredentialPair

logger = logging.getLogger(__name__)

CAPTCHA_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
_NOT_IN_ALPHABET = re.compile(r"[^A-Z0-9]")

LOGIN_FORM_SELECTOR = "#login-box"
CAPTCHA_SELECTOR = "#captcha_code"
USERNAME_SELECTOR = "#username"
PASSWORD_SELECTOR = "#password"
CAPTCHA_INPUT_SELECTOR = "#code"
SUBMIT_SELECTOR = "#btn_rlogin"


class CaptchaSolver(Protocol):
    """Image to text capability."""

    async def recognize(self, image: bytes, allowed_charset: str) -> str: ...


class TesseractCaptchaSolver:
    """Reads CAPTCHA images with Tesseract OCR, off the event loop."""

    def __init__(self, language: str = "eng") -> None:
        self._language = language

    async def recognize(self, image: bytes, allowed_charset: str) -> str:
        return await asyncio.to_thread(self._recognize_sync, image, allowed_charset)

    def _recognize_sync(self, image: bytes, allowed_charset: str) -> str:
        import pytesseract
        from PIL import Image

        with Image.open(io.BytesIO(image)) as img:
            return pytesseract.image_to_string(
                img, lang=self._language,
                config=f"--psm 7 -c tessedit_char_whitelist={allowed_charset}",
            )


def normalize_captcha(text: str) -> str:
    """Reduce OCR output to upper-case letters and digits."""
    return _NOT_IN_ALPHABET.sub("", (text or "").upper())


class PortalLoginClient:
    """Drives the portal login page in a headless browser.

    Each call to :meth:`login` launches its own browser and always closes
    it again, whatever the outcome.
    """

    def __init__(
        self,
        portal: PortalConfig,
        browser: BrowserConfig,
        solver: CaptchaSolver,
        playwright_factory: Callable[[], AsyncContextManager[Any]] = async_playwright,
    ) -> None:
        self._portal = portal
        self._browser = browser
        self._solver = solver
        self._playwright_factory = playwright_factory

    @property
    def login_url(self) -> str:
        return f"{self._portal.base_url}{self._portal.login_path}"

    async def login(self, username: Optional[str] = None, password: Optional[str] = None) -> CredentialPair:
        username = username or self._portal.username
        password = password or self._portal.password
        try:
            async with self._playwright_factory() as playwright:
                browser = await playwright.chromium.launch(
                    headless=self._browser.headless,
                    executable_path=self._browser.executable_path,
                    args=list(self._browser.args),
                )
                try:
                    return await self._handshake(browser, username, password)
                finally:
                    await browser.close()
        except LoginError:
            raise
        except PlaywrightTimeoutError as e:
            raise LoginError(f"Login page timed out: {e}") from e
        except PlaywrightError as e:
            raise LoginError(f"Browser automation failed: {e}") from e

    async def _handshake(self, browser: Any, username: str, password: str) -> CredentialPair:
        nav_ms = self._browser.navigation_timeout * 1000
        page = await browser.new_page()
        await page.goto(self.login_url, wait_until="domcontentloaded", timeout=nav_ms)
        await page.wait_for_selector(LOGIN_FORM_SELECTOR, timeout=self._browser.element_timeout * 1000)

        captcha = await self._read_captcha(page)

        await page.fill(USERNAME_SELECTOR, username)
        await page.fill(PASSWORD_SELECTOR, password)
        await page.fill(CAPTCHA_INPUT_SELECTOR, captcha)
        async with page.expect_navigation(wait_until="domcontentloaded", timeout=nav_ms):
            await page.click(SUBMIT_SELECTOR)

        if not any(marker in page.url for marker in self._portal.authenticated_paths):
            raise LoginError(f"Unexpected URL after login: {page.url}")

        cookies = await page.context.cookies()
        try:
            pair = CredentialPair.from_cookies(cookies, self._portal.auth_cookie, self._portal.session_cookie)
        except KeyError as e:
            raise LoginError(f"Required cookie {e.args[0]!r} not found after login") from e
        logger.info("Portal login succeeded for %s", username)
        return pair

    async def _read_captcha(self, page: Any) -> str:
        element = await page.query_selector(CAPTCHA_SELECTOR)
        if element is None:
            raise LoginError("CAPTCHA image not found on login page")
        image = await element.screenshot()
        try:
            raw = await self._solver.recognize(image, CAPTCHA_ALPHABET)
        except Exception as e:
            raise LoginError(f"CAPTCHA recognition failed: {e}") from e
        text = normalize_captcha(raw)
        if not text:
            raise LoginError("CAPTCHA could not be read")
        logger.debug("CAPTCHA read as %r", text)
        return text
