"""Tests for the browser login handshake, driven by a fake Playwright."""
from contextlib import asynccontextmanager
from typing import Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from portalbot.config import BrowserConfig, PortalConfig
from portalbot.errors import AuthenticationError, LoginError
from portalbot.session.login import (
    CAPTCHA_ALPHABET,
    CAPTCHA_INPUT_SELECTOR,
    PASSWORD_SELECTOR,
    USERNAME_SELECTOR,
    PortalLoginClient,
    normalize_captcha,
)
from portalbot.session.manager import SessionLifecycleManager

GOOD_COOKIES = [
    {"name": "railwire_cookie_name", "value": "tok-1"},
    {"name": "ci_session", "value": "sess-1"},
    {"name": "unrelated", "value": "x"},
]


class FakeElement:
    async def screenshot(self) -> bytes:
        return b"png-bytes"


class FakeNavigation:
    def __init__(self, page: "FakePage") -> None:
        self._page = page

    async def __aenter__(self) -> None:
        return None

    async def __aexit__(self, *args) -> None:
        self._page.url = self._page.landing_url


class FakeBrowserContext:
    def __init__(self, cookies: list[dict]) -> None:
        self._cookies = cookies

    async def cookies(self) -> list[dict]:
        return self._cookies


class FakePage:
    def __init__(self, landing_url: str, cookies: list[dict], captcha: bool = True,
                 goto_error: Optional[Exception] = None) -> None:
        self.url = "about:blank"
        self.landing_url = landing_url
        self.context = FakeBrowserContext(cookies)
        self.filled: dict[str, str] = {}
        self.clicked: list[str] = []
        self._captcha = captcha
        self._goto_error = goto_error

    async def goto(self, url: str, **kwargs) -> None:
        if self._goto_error is not None:
            raise self._goto_error
        self.url = url

    async def wait_for_selector(self, selector: str, **kwargs) -> None:
        return None

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        return FakeElement() if self._captcha else None

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    def expect_navigation(self, **kwargs) -> FakeNavigation:
        return FakeNavigation(self)

    async def click(self, selector: str) -> None:
        self.clicked.append(selector)


class FakeBrowser:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self, browser: FakeBrowser) -> None:
        self.browser = browser
        self.launch_kwargs: dict = {}

    async def launch(self, **kwargs) -> FakeBrowser:
        self.launch_kwargs = kwargs
        return self.browser


class FakePlaywright:
    def __init__(self, browser: FakeBrowser) -> None:
        self.chromium = FakeChromium(browser)


class FakeSolver:
    def __init__(self, text: str = " ab-12 c\n") -> None:
        self.text = text
        self.charsets: list[str] = []

    async def recognize(self, image: bytes, allowed_charset: str) -> str:
        self.charsets.append(allowed_charset)
        return self.text


class BrokenSolver:
    """Solver whose OCR backend is unavailable."""

    def __init__(self) -> None:
        self.calls = 0

    async def recognize(self, image: bytes, allowed_charset: str) -> str:
        self.calls += 1
        raise OSError("tesseract is not installed or it's not in your PATH")


def _client(portal_config: PortalConfig, page: FakePage, solver=None):
    browser = FakeBrowser(page)
    playwright = FakePlaywright(browser)

    @asynccontextmanager
    async def factory():
        yield playwright

    client = PortalLoginClient(portal_config, BrowserConfig(), solver or FakeSolver(), playwright_factory=factory)
    return client, browser, playwright


class TestNormalizeCaptcha:
    def test_strips_noise_and_uppercases(self) -> None:
        assert normalize_captcha(" ab-12 c\n") == "AB12C"

    def test_empty_input(self) -> None:
        assert normalize_captcha("") == ""
        assert normalize_captcha(None) == ""


class TestPortalLogin:
    """Each login launches one browser and always closes it."""

    @pytest.mark.asyncio
    async def test_successful_login_returns_pair(self, portal_config: PortalConfig) -> None:
        page = FakePage("https://portal.test/billcntl/home", GOOD_COOKIES)
        solver = FakeSolver()
        client, browser, playwright = _client(portal_config, page, solver)

        pair = await client.login()

        assert pair.auth.value == "tok-1"
        assert pair.session.value == "sess-1"
        assert browser.closed
        assert page.filled[USERNAME_SELECTOR] == "admin"
        assert page.filled[PASSWORD_SELECTOR] == "secret"
        assert page.filled[CAPTCHA_INPUT_SELECTOR] == "AB12C"
        assert solver.charsets == [CAPTCHA_ALPHABET]
        assert playwright.chromium.launch_kwargs["headless"] is True

    @pytest.mark.asyncio
    async def test_login_url(self, portal_config: PortalConfig) -> None:
        client, _, _ = _client(portal_config, FakePage("", []))
        assert client.login_url == "https://portal.test/rlogin"

    @pytest.mark.asyncio
    async def test_unexpected_landing_url_fails(self, portal_config: PortalConfig) -> None:
        page = FakePage("https://portal.test/rlogin?error=1", GOOD_COOKIES)
        client, browser, _ = _client(portal_config, page)

        with pytest.raises(LoginError, match="Unexpected URL"):
            await client.login()
        assert browser.closed

    @pytest.mark.asyncio
    async def test_missing_cookie_fails(self, portal_config: PortalConfig) -> None:
        page = FakePage("https://portal.test/subcntl/x", [{"name": "ci_session", "value": "s"}])
        client, browser, _ = _client(portal_config, page)

        with pytest.raises(LoginError, match="railwire_cookie_name"):
            await client.login()
        assert browser.closed

    @pytest.mark.asyncio
    async def test_missing_captcha_image_fails(self, portal_config: PortalConfig) -> None:
        page = FakePage("https://portal.test/billcntl/home", GOOD_COOKIES, captcha=False)
        client, browser, _ = _client(portal_config, page)

        with pytest.raises(LoginError, match="CAPTCHA image not found"):
            await client.login()
        assert browser.closed

    @pytest.mark.asyncio
    async def test_unreadable_captcha_fails(self, portal_config: PortalConfig) -> None:
        page = FakePage("https://portal.test/billcntl/home", GOOD_COOKIES)
        client, browser, _ = _client(portal_config, page, FakeSolver("--- \n"))

        with pytest.raises(LoginError, match="could not be read"):
            await client.login()
        assert page.clicked == []
        assert browser.closed

    @pytest.mark.asyncio
    async def test_browser_timeout_becomes_login_error(self, portal_config: PortalConfig) -> None:
        page = FakePage("", GOOD_COOKIES, goto_error=PlaywrightTimeoutError("Timeout 60000ms exceeded"))
        client, browser, _ = _client(portal_config, page)

        with pytest.raises(LoginError, match="timed out"):
            await client.login()
        assert browser.closed

    @pytest.mark.asyncio
    async def test_explicit_credentials_override_config(self, portal_config: PortalConfig) -> None:
        page = FakePage("https://portal.test/billcntl/home", GOOD_COOKIES)
        client, _, _ = _client(portal_config, page)

        await client.login("other", "pw2")
        assert page.filled[USERNAME_SELECTOR] == "other"
        assert page.filled[PASSWORD_SELECTOR] == "pw2"


class TestSolverFailures:
    """OCR backend errors count as failed login attempts."""

    @pytest.mark.asyncio
    async def test_solver_error_becomes_login_error(self, portal_config: PortalConfig) -> None:
        page = FakePage("https://portal.test/billcntl/home", GOOD_COOKIES)
        client, browser, _ = _client(portal_config, page, BrokenSolver())

        with pytest.raises(LoginError, match="CAPTCHA recognition failed"):
            await client.login()
        assert page.clicked == []
        assert browser.closed

    @pytest.mark.asyncio
    async def test_manager_retries_then_raises_authentication_error(
        self, portal_config: PortalConfig, session_config, clock, instant_retry,
    ) -> None:
        solver = BrokenSolver()
        page = FakePage("https://portal.test/billcntl/home", GOOD_COOKIES)
        client, browser, _ = _client(portal_config, page, solver)
        manager = SessionLifecycleManager(client, session_config, clock, retry=instant_retry)

        with pytest.raises(AuthenticationError, match="CAPTCHA recognition failed"):
            await manager.get_credentials()
        assert solver.calls == 3
        assert manager.login_count == 3
        assert browser.closed
        assert manager.credentials is None
