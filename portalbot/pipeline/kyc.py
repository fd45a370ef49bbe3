"""Handlers for the two actionable worklist classes."""
import logging
from typing import Optional

from portalbot.conversation.coordinator import OperatorChannel
from portalbot.errors import RemoteOperationError
from portalbot.portal.client import PortalActionClient
from portalbot.portal.models import KycDetail, KycWorkItem, ProvisioningForm
from portalbot.reference.directory import ReferenceData

from .outcomes import ItemResult

logger = logging.getLogger(__name__)

VERIFY_PROMPT = "Do you want to verify? (y/n)"
MANUAL_USERNAME_PROMPT = "Input Manual Username:"


def format_kyc_summary(detail: KycDetail) -> str:
    lines = [f"Address Proof for No.: {detail.mobile_no}", "", "Details:"]
    lines.extend(f"{name}: {value}" for name, value in detail.fields)
    return "\n".join(lines)


def format_username_options(existing: str, derived: str) -> str:
    lines = ["Choose username option:"]
    if existing:
        lines.append(f"1. Default Username: {existing}")
    lines.append(f"2. Bot Username: {derived}")
    lines.append("3. Input Username manually")
    return "\n".join(lines)


class EvidenceReviewHandler:
    """Pending-evidence forms.

    A form whose address proof is missing is approved without asking.
    Otherwise the operator sees the form fields and must answer yes.
    """

    def __init__(self, portal: PortalActionClient, operator: OperatorChannel) -> None:
        self._portal = portal
        self._operator = operator

    async def handle(self, item: KycWorkItem) -> ItemResult:
        detail = await self._portal.fetch_kyc_detail(item.link)
        if not detail.evidence_present:
            logger.info("Marking %s as verified because the address proof is missing", item.remote_id)
            await self._portal.mark_kyc_verified(item.remote_id, detail.mobile_no)
            return ItemResult.progressed("auto-approved")

        logger.info("Address proof exists for mobile %s", detail.mobile_no)
        await self._operator.say(format_kyc_summary(detail))
        answer = await self._operator.ask(VERIFY_PROMPT)
        if not answer.lower().startswith("y"):
            logger.info("Operator declined verification of %s", item.remote_id)
            return ItemResult.skipped("Operator declined")
        await self._portal.mark_kyc_verified(item.remote_id, detail.mobile_no)
        return ItemResult.progressed("approved by operator")


class ProvisioningHandler:
    """Verified forms awaiting an account.

    Derives ``<partner code>.<first name>`` with numeric suffixes, lets
    the operator pick a name, creates the subscription and resets its
    passwords.
    """

    def __init__(self, portal: PortalActionClient, reference: ReferenceData, operator: OperatorChannel) -> None:
        self._portal = portal
        self._reference = reference
        self._operator = operator

    async def handle(self, item: KycWorkItem) -> ItemResult:
        form = await self._portal.fetch_provisioning_form(item.link)
        if not form.first_name:
            return ItemResult.failed("First name not found")
        if not form.complete:
            return ItemResult.failed("Required form inputs not found")

        detail = await self._portal.fetch_kyc_detail(item.link)
        code = self._reference.code_for_partner(detail.associated_partner)
        if not code:
            return ItemResult.failed(f"No partner code for {detail.associated_partner or 'unknown partner'}")

        derived = await self._portal.derive_username(form.first_name, f"{code}.{form.first_name}")
        if not derived:
            return ItemResult.failed("Failed to derive username")

        username = await self._choose_username(form, derived)
        if username is None:
            return ItemResult.skipped("No username chosen")

        await self._portal.create_subscription(form, username)
        logger.info("Subscription created for %s", username)
        await self._after_creation(username)
        return ItemResult.progressed(username)

    async def _choose_username(self, form: ProvisioningForm, derived: str) -> Optional[str]:
        existing = form.existing_username
        choice = await self._operator.ask(format_username_options(existing, derived))
        if choice == "1" and existing:
            return await self._verify(form, existing)
        if choice == "2":
            return derived
        if choice == "3":
            manual = await self._operator.ask(MANUAL_USERNAME_PROMPT)
            if not manual:
                await self._operator.say("Username cannot be empty.")
                return None
            return await self._verify(form, manual)
        await self._operator.say("Invalid option.")
        return None

    async def _verify(self, form: ProvisioningForm, candidate: str) -> Optional[str]:
        if await self._portal.try_username(form.first_name, candidate):
            return candidate
        await self._operator.say(f"Username {candidate} is not available.")
        return None

    async def _after_creation(self, username: str) -> None:
        """Reset both passwords of the new account and report it."""
        try:
            user = await self._portal.fetch_user(username)
        except RemoteOperationError as e:
            logger.error("Failed to fetch %s for password reset: %s", username, e)
            user = None
        if user is None:
            logger.error("Failed to fetch user data for password reset of %s", username)
            await self._operator.say(f"*Subscription Created*: {username}")
            return
        reset = await self._portal.reset_password(user)
        logger.info("Password reset for %s: portal=%s pppoe=%s", username, reset.portal_reset, reset.pppoe_reset)
        lines = [f"*Subscription Created*: {username}"]
        if reset.ok:
            lines.append(f"*Default Password:* {user.default_password}")
        await self._operator.say("\n".join(lines))
