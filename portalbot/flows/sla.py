"""Incident creation on the SLA desk."""
import logging
from typing import Optional

import httpx

from portalbot.config import SlaConfig
from portalbot.conversation.coordinator import OperatorChannel
from portalbot.errors import AuthenticationError, PortalBotError, RemoteOperationError, ValidationError

logger = logging.getLogger(__name__)

SESSION_COOKIE = "ci_session"

SUBJECTS = (
    "Activate with available balance", "AGNP bank details updation", "ANP - Mobile number and Email ID change",
    "ANP address change", "ANP Demo ID renewal", "ANP disbursement issue", "ANP GSTIN issue",
    "ANP name change", "ANP online recharge issue", "ANP-AGNP mapping", "Authentication issue",
    "BSS issue", "CRM ticket issue", "CSV download option issue", "Data usage issue", "Decommission date updation",
    "disable sub-online recharge", "DOC updation", "Double recharge", "DVR IP Port Request",
    "Enable sub-online recharge", "IFSC code issue", "Invoice issue", "Location transfer",
    "Others", "Package change", "Permanent Inactive Request", "Plan Implementation", "Plan Upgradation",
    "SLA dashboard issue", "Stale session", "Static IP DoP updation", "Static IP recharge issue",
    "Static IP renewal issue", "Sub - Mobile number and Email ID Change", "Subscriber address change",
    "Subscriber applicant name change", "Subscriber GSTIN change", "Subscriber GSTIN issue",
    "Subscriber GSTIN Removal", "Subscriber KYC-Application Mapping", "Subscriber KYC/Application issue",
    "Subscriber online recharge issue", "Subscriber package issue", "Subscriber static IP issue",
    "Subscription expiry", "Subscription type change", "User Reactivation", "Username change",
    "Wrong recharge",
)

_INCIDENT_COLUMNS = ("ticketid", "msp_created", "etr", "status", "ptype", "actualclosedate", "description")


def incident_query(status: str = "Pending") -> dict[str, str]:
    """Form body of the incident table's AJAX endpoint, newest row only."""
    query = {
        "draw": "1",
        "start": "0",
        "length": "1",
        "incident_status": status,
        "descp": "",
        "s_date": "",
        "search[value]": "",
        "search[regex]": "false",
    }
    for index, column in enumerate(_INCIDENT_COLUMNS):
        query[f"columns[{index}][data]"] = column
        query[f"columns[{index}][searchable]"] = "true"
        query[f"columns[{index}][orderable]"] = "false"
        query[f"columns[{index}][search][value]"] = ""
        query[f"columns[{index}][search][regex]"] = "false"
    return query


def format_subjects(subjects: tuple[str, ...] = SUBJECTS) -> str:
    return "Subject:\n" + "\n".join(f"{i}. {subject}" for i, subject in enumerate(subjects, start=1))


class SlaClient:
    """Form client for the SLA desk. Must be used as async context manager."""

    def __init__(self, config: SlaConfig, http: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._client = http
        self._owns_client = http is None

    async def __aenter__(self) -> "SlaClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout))
        return self

    async def __aexit__(self, *args) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _require_client(self, operation: str) -> httpx.AsyncClient:
        if self._client is None:
            raise RemoteOperationError("SLA client not initialized", operation=operation)
        return self._client

    async def login(self) -> str:
        """Sign in; the session cookie value.

        Raises:
            AuthenticationError: No 303 redirect or no session cookie.
        """
        client = self._require_client("sla login")
        try:
            resp = await client.post(
                f"{self._config.base_url}/rlogin/index",
                data={"username": self._config.username, "password": self._config.password},
                follow_redirects=False,
            )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"SLA login request failed: {e}") from e
        if resp.status_code != 303:
            raise AuthenticationError(f"SLA login answered HTTP {resp.status_code}")
        session = resp.cookies.get(SESSION_COOKIE)
        if not session:
            raise AuthenticationError("Login failed: No session cookie received")
        return session

    async def submit_incident(self, session: str, subject: str, description: str) -> None:
        client = self._require_client("sla incident")
        fields = {
            "desc": description,
            "subject": subject,
            "project": self._config.project,
            "scode": self._config.circle,
            "mspid": self._config.msp_id,
            "circle": self._config.circle,
            "assig_date": "undefined",
        }
        try:
            resp = await client.post(
                f"{self._config.base_url}/mspcntl/addmspincident",
                files={name: (None, value) for name, value in fields.items()},
                headers={"Cookie": f"{SESSION_COOKIE}={session}"},
            )
        except httpx.HTTPError as e:
            raise RemoteOperationError(f"SLA incident request failed: {e}", operation="sla incident") from e
        if resp.status_code >= 400:
            raise RemoteOperationError(f"SLA incident returned HTTP {resp.status_code}",
                                       operation="sla incident", status_code=resp.status_code)

    async def latest_incident_id(self, session: str) -> Optional[str]:
        client = self._require_client("sla incidents")
        try:
            resp = await client.post(
                f"{self._config.base_url}/mspcntl/msp_incident_details_ajax",
                data=incident_query(),
                headers={
                    "Accept": "application/json, text/javascript, */*; q=0.01",
                    "Cookie": f"{SESSION_COOKIE}={session}",
                },
            )
            body = resp.json()
        except httpx.HTTPError as e:
            raise RemoteOperationError(f"SLA incident list failed: {e}", operation="sla incidents") from e
        except ValueError:
            raise RemoteOperationError("SLA incident list returned a non-JSON body", operation="sla incidents") from None
        rows = body.get("data") if isinstance(body, dict) else None
        if not rows:
            return None
        ticket_id = rows[0].get("ticketid")
        return str(ticket_id) if ticket_id else None


class SlaTicketFlow:
    def __init__(self, client: SlaClient, subjects: tuple[str, ...] = SUBJECTS) -> None:
        self._client = client
        self._subjects = subjects

    async def run(self, channel: OperatorChannel) -> None:
        """Pick a subject, describe, confirm with ``yes``, submit."""
        try:
            session = await self._client.login()
        except AuthenticationError as e:
            logger.error("%s", e)
            await channel.say("❌ Failed to create SLA ticket.")
            return

        answer = await channel.ask(format_subjects(self._subjects))
        try:
            subject = self._subjects[int(answer) - 1] if int(answer) >= 1 else None
        except (ValueError, IndexError):
            subject = None
        if subject is None:
            raise ValidationError("❌ Invalid subject selection.")

        description = await channel.ask("Enter description:")
        confirm = await channel.ask("✅ Do you want to send the request? Type *yes* or *no*.")
        if confirm.lower() != "yes":
            await channel.say("🚫 Request canceled.")
            return

        try:
            await self._client.submit_incident(session, subject, description)
            ticket_id = await self._client.latest_incident_id(session)
        except PortalBotError as e:
            logger.error("Error creating SLA ticket: %s", e)
            await channel.say("❌ Failed to create SLA ticket.")
            return

        if ticket_id:
            await channel.say(f"✅ Incident created successfully! Ticket ID: #{ticket_id}")
        else:
            await channel.say("⚠️ Incident submitted but no ticket ID found.")
