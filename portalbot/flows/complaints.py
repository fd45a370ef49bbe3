"""OTT complaint desk: status lookup and complaint registration."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from portalbot.config import ComplaintConfig
from portalbot.conversation.coordinator import OperatorChannel
from portalbot.errors import AuthenticationError, RemoteOperationError, ValidationError
from portalbot.portal.models import title_case
from portalbot.reference.directory import ReferenceData

logger = logging.getLogger(__name__)

STATUS_EMOJI = {"Closed": "✅", "OnHold": "⏸️", "Open": "🔄"}
DEFAULT_REMARK = "No remarks provided."


class Complaint(BaseModel):
    """A complaint as listed by the desk API."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    number: int = Field(alias="ComplaintNumber")
    username: str = Field(default="", alias="Username")
    status: str = Field(default="", alias="Status")
    service_provider: str = Field(default="", alias="ServiceProvider")
    remark: Optional[str] = Field(default=None, alias="Remark")


def format_complaint(complaint: Complaint) -> str:
    emoji = STATUS_EMOJI.get(complaint.status, "ℹ️")
    return "\n".join([
        "*Complaint Status*",
        "",
        f"*Complaint Number:* {complaint.number}",
        f"*Username:* {complaint.username}",
        f"*Status:* {emoji} {complaint.status}",
        f"*Service:* {complaint.service_provider}",
        "",
        f"*Remark:* {complaint.remark or DEFAULT_REMARK}",
    ])


class ComplaintClient:
    """JSON client for the complaint desk. Must be used as async context manager."""

    def __init__(self, config: ComplaintConfig, http: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._client = http
        self._owns_client = http is None

    async def __aenter__(self) -> "ComplaintClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout))
        return self

    async def __aexit__(self, *args) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, operation: str, payload: Any, params: Optional[dict] = None) -> Any:
        if self._client is None:
            raise RemoteOperationError("Complaint client not initialized", operation=operation)
        try:
            resp = await self._client.post(f"{self._config.base_url}{path}", json=payload, params=params)
        except httpx.HTTPError as e:
            raise RemoteOperationError(f"{operation} request failed: {e}", operation=operation) from e
        if resp.status_code >= 400:
            raise RemoteOperationError(f"{operation} returned HTTP {resp.status_code}",
                                       operation=operation, status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError:
            raise RemoteOperationError(f"{operation} returned a non-JSON body", operation=operation) from None

    async def sign_in(self) -> str:
        """Sign in and return the desk ``UserId``.

        Raises:
            AuthenticationError: The desk refused the credentials.
        """
        try:
            data = await self._post("/GSignin", "complaint sign-in", {
                "UserName": self._config.username,
                "Platform": self._config.platform,
                "Password": self._config.password,
                "IPAddress": "",
            })
        except RemoteOperationError as e:
            raise AuthenticationError(f"Complaint desk sign-in failed: {e}") from e
        user_id = data.get("UserId") if isinstance(data, dict) else None
        if not user_id:
            raise AuthenticationError("Complaint desk sign-in returned no UserId")
        return str(user_id)

    async def list_complaints(self, user_id: str) -> list[Complaint]:
        """Complaints of the signed-in account, newest first."""
        data = await self._post("/GGetOTTComplaintList", "complaint list", user_id, params={"UserID": user_id})
        if not isinstance(data, list):
            raise RemoteOperationError("complaint list returned an unexpected body", operation="complaint list")
        return [Complaint.model_validate(item) for item in data]

    async def register(self, user_id: str, username: str, contact_name: str, mobile_no: str, email: str) -> str:
        """Register a complaint for the configured service; the desk's message."""
        service = self._config.service_provider
        data = await self._post("/GOTTComplaintRegistration", "complaint registration", {
            "Mode": 1,
            "ComplaintNo": 0,
            "ContactName": contact_name,
            "CustMobileNo": mobile_no,
            "Username": username,
            "CompanyName": self._config.company_name,
            "VendorCode": self._config.vendor_code,
            "OperatorCode": self._config.operator_code,
            "Email": email,
            "Phone": mobile_no,
            "Subject": f"{service} not working",
            "Description": f"Customer is not able to use {service}",
            "Remark": "",
            "Status": "O",
            "TicketOwner": self._config.ticket_owner,
            "ServiceProvider": service,
            "IssueType": "Subscription",
            "ReportedDate": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M"),
            "Priority": "High",
            "Channel": "Phone",
            "Classifications": "Problem",
            "UserId": user_id,
        })
        return (data.get("ErrorMsg") if isinstance(data, dict) else None) or "Unknown response from server."


class ComplaintFlows:
    def __init__(self, client: ComplaintClient, reference: ReferenceData) -> None:
        self._client = client
        self._reference = reference

    async def lookup(self, channel: OperatorChannel) -> None:
        """Ask for a complaint number and report its status."""
        raw = await channel.ask("🔢 Complaint No:")
        try:
            number = int(raw)
        except ValueError:
            raise ValidationError("❌ Invalid Complaint Number.") from None

        try:
            user_id = await self._client.sign_in()
        except AuthenticationError as e:
            logger.error("%s", e)
            await channel.say("❌ Failed to authenticate with backend.")
            return

        try:
            complaints = await self._client.list_complaints(user_id)
        except RemoteOperationError as e:
            logger.error("Complaint lookup failed: %s", e)
            await channel.say("❌ Error fetching complaint.")
            return

        match = next((c for c in complaints if c.number == number), None)
        if match is None:
            await channel.say(f"❌ No complaint found with number {number}")
            return
        await channel.say(format_complaint(match))

    async def register_ott(self, channel: OperatorChannel, user_code: str) -> None:
        """Register an OTT complaint for a subscriber known to the directory."""
        user = self._reference.find_user(user_code)
        if user is None:
            logger.info("No directory entry for %s, OTT complaint not registered", user_code)
            return
        try:
            user_id = await self._client.sign_in()
            message = await self._client.register(
                user_id, user.username, title_case(user.name), user.mobile_no, user.email,
            )
            complaints = await self._client.list_complaints(user_id)
        except (AuthenticationError, RemoteOperationError) as e:
            logger.error("OTT complaint for %s failed: %s", user_code, e)
            await channel.say(f"❌ Error submitting complaint for {user_code}.")
            return

        lines = [f"*{message}*", "", f"*Username:* {user.username}"]
        if complaints:
            latest = complaints[0]
            lines.append(f"*Complaint No.:* {latest.number}")
            lines.append(f"*Status:* {latest.status}")
        lines += ["", "*Please ask the customer to answer the call from the OTT team*."]
        await channel.say("\n".join(lines))
