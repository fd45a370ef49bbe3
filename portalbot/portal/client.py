"""Authenticated portal operations over HTTP."""
import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx

from portalbot.config import PortalConfig
from portalbot.errors import RemoteOperationError
from portalbot.session.credentials import CredentialPair

from . import parsing
from .models import (
    KycDetail,
    KycWorkItem,
    PasswordResetResult,
    PlanForm,
    ProvisioningForm,
    SubscriberRow,
    Ticket,
    UserRecord,
)

logger = logging.getLogger(__name__)

SEARCH_PATH = "/billcntl/searchsub"
KYC_WORKLIST_PATH = "/billcntl/kycpending"
TICKETS_PATH = "/crmcntl/bill_tickets"
DETAIL_LINK_PREFIX = "/billcntl/subscriptiondetail/"
USAGE_LINK_PREFIX = "/billcntl/currentmonthdatause/"
ACTIVE_SESSION_SELECTOR = "#cusdiscon_btn"
USERNAME_SUFFIX_ATTEMPTS = 10


class CredentialSource(Protocol):
    async def get_credentials(self) -> CredentialPair: ...


class PortalActionClient:
    """Named portal operations. Must be used as async context manager.

    Every operation fetches credentials from the session manager, so a
    call made after the pair expires transparently waits for the refresh.
    Operations answer with parsed records or raise ``RemoteOperationError``.
    """

    def __init__(self, config: PortalConfig, session: CredentialSource,
                 http: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._session = session
        self._client = http
        self._owns_client = http is None

    async def __aenter__(self) -> "PortalActionClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout))
        return self

    async def __aexit__(self, *args) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._config.base_url}{path if path.startswith('/') else '/' + path}"

    # -- transport -------------------------------------------------------

    def _headers(self, pair: CredentialPair) -> dict[str, str]:
        return {"Cookie": pair.cookie_header()}

    def _form(self, pair: CredentialPair, **fields: Any) -> dict[str, str]:
        body = {k: "" if v is None else str(v) for k, v in fields.items()}
        body[self._config.form_token_field] = pair.form_token
        return body

    async def _send(self, method: str, path: str, operation: str, pair: CredentialPair,
                    data: Optional[dict] = None,
                    follow_redirects: bool = True) -> httpx.Response:
        if self._client is None:
            raise RemoteOperationError("Portal client not initialized", operation=operation)
        try:
            resp = await self._client.request(
                method, self.url(path), data=data,
                headers=self._headers(pair), follow_redirects=follow_redirects,
            )
        except httpx.HTTPError as e:
            raise RemoteOperationError(f"{operation} request failed: {e}", operation=operation) from e
        if resp.status_code >= 400:
            raise RemoteOperationError(f"{operation} returned HTTP {resp.status_code}",
                                       operation=operation, status_code=resp.status_code)
        return resp

    async def _get_html(self, path: str, operation: str, pair: Optional[CredentialPair] = None) -> str:
        pair = pair or await self._session.get_credentials()
        resp = await self._send("GET", path, operation, pair)
        return resp.text

    async def _post_status(self, path: str, operation: str, pair: CredentialPair, **fields: Any) -> dict:
        resp = await self._send("POST", path, operation, pair, data=self._form(pair, **fields))
        return _envelope(resp, operation)

    async def _post_ok(self, path: str, operation: str, pair: CredentialPair, **fields: Any) -> bool:
        """POST a form and report whether the envelope says OK."""
        try:
            envelope = await self._post_status(path, operation, pair, **fields)
        except RemoteOperationError as e:
            logger.error("%s failed: %s", operation, e)
            return False
        status = envelope.get("STATUS")
        logger.info("%s: %s", operation, status)
        return status == "OK"

    # -- subscribers -----------------------------------------------------

    async def search_subscribers(self, query: str) -> list[SubscriberRow]:
        pair = await self._session.get_credentials()
        html = await self._search_page(query, pair)
        return parsing.parse_search_rows(html)

    async def _search_page(self, query: str, pair: CredentialPair) -> str:
        resp = await self._send("POST", SEARCH_PATH, "search", pair,
                                data=self._form(pair, **{"user-search": query}), follow_redirects=False)
        location = resp.headers.get("location")
        if resp.is_redirect and location:
            return (await self._send("GET", location, "search", pair)).text
        return resp.text

    async def fetch_user(self, query: str) -> Optional[UserRecord]:
        """Look up a subscriber by username or id; None when not found."""
        pair = await self._session.get_credentials()
        rows = parsing.parse_search_rows(await self._search_page(query, pair))
        if not rows:
            return None
        row = rows[0]
        name = ""
        try:
            detail = await self._get_html(row.link, "subscriber detail", pair)
            name = parsing.parse_detail_field(detail, "Name") or ""
        except RemoteOperationError as e:
            logger.error("Failed to fetch user detail page for %s: %s", row.username, e)
        return UserRecord(username=row.username, name=name, mobile_no=row.mobile, subscriber_id=row.id)

    async def reset_session(self, user: UserRecord) -> bool:
        pair = await self._session.get_credentials()
        ended, cleared = await asyncio.gather(
            self._post_ok("/billcntl/endacctsession", "end session", pair, uname=user.username),
            self._post_ok("/billcntl/clear_acctsession", "clear session", pair, uname=user.username),
        )
        return ended and cleared

    async def reset_password(self, user: UserRecord) -> PasswordResetResult:
        """Reset the billing-portal and PPPoE passwords in parallel."""
        pair = await self._session.get_credentials()
        fields = {"subid": user.subscriber_id, "mobileno": user.mobile_no}
        portal, pppoe = await asyncio.gather(
            self._post_ok("/subapis/subpassreset", "portal password reset", pair, flag="Bill", **fields),
            self._post_ok("/subapis/subpassreset", "pppoe password reset", pair, flag="Internet", **fields),
        )
        return PasswordResetResult(portal_reset=portal, pppoe_reset=pppoe)

    async def reactivate_id(self, user: UserRecord) -> bool:
        """Post the expiry update that toggles an inactive ID back on."""
        pair = await self._session.get_credentials()
        return await self._post_ok("/billcntl/update_expiry", "update expiry", pair, subid=user.subscriber_id)

    async def fetch_plan_form(self, link: str) -> PlanForm:
        return parsing.parse_plan_form(await self._get_html(link, "plan form"))

    async def change_plan(self, form: PlanForm, package_id: str, username: str) -> bool:
        pair = await self._session.get_credentials()
        return await self._post_ok(
            "/finapis/msp_plan_applynow", "change plan", pair,
            verifyHidden=form.verify_hidden, subid=form.subid, pkgid=package_id,
            status=form.status, uname=username, oldpkgid=form.old_package_id,
        )

    # -- KYC worklist ----------------------------------------------------

    async def list_kyc_worklist(self) -> list[KycWorkItem]:
        return parsing.parse_kyc_worklist(await self._get_html(KYC_WORKLIST_PATH, "kyc worklist"))

    async def fetch_kyc_detail(self, link: str) -> KycDetail:
        return parsing.parse_kyc_detail(await self._get_html(link, "kyc detail"), self._config.base_url)

    async def mark_kyc_verified(self, oltabid: str, mobile_no: str) -> None:
        pair = await self._session.get_credentials()
        resp = await self._send("POST", "/kycapis/kyc_mark_verified", "mark verified", pair,
                                data=self._form(pair, oltabid=oltabid, mobileno_dual=mobile_no))
        envelope = _envelope(resp, "mark verified", required=False)
        if envelope and envelope.get("STATUS") not in (None, "OK"):
            raise RemoteOperationError(f"mark verified answered {envelope.get('STATUS')}", operation="mark verified")

    async def fetch_provisioning_form(self, link: str) -> ProvisioningForm:
        return parsing.parse_provisioning_form(await self._get_html(link, "provisioning form"))

    async def try_username(self, first_name: str, candidate: str) -> Optional[str]:
        """Ask the portal to accept ``candidate``; the accepted name or None."""
        pair = await self._session.get_credentials()
        try:
            envelope = await self._post_status("/kycapis/derive_username", "derive username", pair,
                                               fname=first_name, lname="", mod_username=candidate)
        except RemoteOperationError as e:
            logger.info("Username %r not derived: %s", candidate, e)
            return None
        if envelope.get("STATUS") != "OK":
            return None
        return envelope.get("UNAME") or None

    async def derive_username(self, first_name: str, base: str,
                              attempts: int = USERNAME_SUFFIX_ATTEMPTS) -> Optional[str]:
        """Try ``base``, ``base1`` ... until the portal accepts one."""
        for attempt in range(attempts):
            candidate = f"{base}{attempt or ''}"
            accepted = await self.try_username(first_name, candidate)
            if accepted:
                return accepted
        return None

    async def create_subscription(self, form: ProvisioningForm, username: str) -> None:
        pair = await self._session.get_credentials()
        envelope = await self._post_status(
            "/kycapis/create_subscription", "create subscription", pair,
            oltabid=form.oltabid, uname=username, pggroupid=form.pggroupid, pkgid=form.pkgid,
            anp=form.anp, vlanid=form.vlanid, caf_type=form.caf_type, mobileno=form.mobileno,
        )
        status = envelope.get("STATUS")
        if status is None:
            raise RemoteOperationError("Session expired during subscription creation",
                                       operation="create subscription")
        if status != "OK":
            raise RemoteOperationError(f"create subscription answered {status}", operation="create subscription")

    # -- tickets ---------------------------------------------------------

    async def list_tickets(self, page_offsets: tuple[str, ...] = ("",)) -> list[Ticket]:
        pair = await self._session.get_credentials()
        tickets: list[Ticket] = []
        for offset in page_offsets:
            path = f"{TICKETS_PATH}/{offset}" if offset else TICKETS_PATH
            tickets.extend(parsing.parse_ticket_rows(await self._get_html(path, "ticket list", pair)))
        return tickets

    async def fetch_ticket_subscriber(self, view_url: str) -> Optional[str]:
        return parsing.parse_ticket_subscriber(await self._get_html(view_url, "ticket detail"))

    async def is_session_active(self, subscriber_code: str) -> bool:
        """Search, open the subscriber, then read the data usage page."""
        pair = await self._session.get_credentials()
        search = await self._search_page(subscriber_code, pair)
        detail_link = parsing.find_link(search, DETAIL_LINK_PREFIX)
        if not detail_link:
            raise RemoteOperationError("Subscriber detail link not found", operation="session check")
        detail = await self._get_html(detail_link, "session check", pair)
        usage_link = parsing.find_link(detail, USAGE_LINK_PREFIX)
        if not usage_link:
            raise RemoteOperationError("Data usage link not found", operation="session check")
        usage = await self._get_html(usage_link, "session check", pair)
        return parsing.has_element(usage, ACTIVE_SESSION_SELECTOR)

    async def close_ticket(self, ticket_id: str, response: str) -> bool:
        pair = await self._session.get_credentials()
        try:
            resp = await self._send("POST", "/crmcntl/close_ticket", "close ticket", pair,
                                    data=self._form(pair, ticketid=ticket_id, response=response))
        except RemoteOperationError as e:
            logger.warning("Failed to close ticket %s: %s", ticket_id, e)
            return False
        return resp.status_code == 200


def _envelope(resp: httpx.Response, operation: str, required: bool = True) -> dict:
    """Decode a ``{"STATUS": ...}`` JSON answer."""
    try:
        data = resp.json()
    except ValueError:
        if not required:
            return {}
        raise RemoteOperationError(f"{operation} returned a non-JSON body", operation=operation) from None
    if not isinstance(data, dict):
        if not required:
            return {}
        raise RemoteOperationError(f"{operation} returned an unexpected body", operation=operation)
    return data
