"""One-shot account actions implied by free-form operator messages."""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from portalbot.chat.messages import InboundMessage
from portalbot.conversation.coordinator import OperatorChannel
from portalbot.portal.client import PortalActionClient
from portalbot.portal.models import PasswordResetResult, UserRecord, title_case
from portalbot.reference.directory import ReferenceData

from .complaints import ComplaintFlows

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"jh(\.\w+){2,}", re.IGNORECASE)
SUBSCRIBER_ID_PATTERN = re.compile(r"\b\d{5}\b")
SESSION_KEYWORDS = re.compile(r"\b(season|session|ip reset|mac)\b", re.IGNORECASE)
REACTIVATE_KEYWORDS = re.compile(r"\b(reactive|reactivate|inactive)\b", re.IGNORECASE)
PASSWORD_KEYWORDS = re.compile(r"\b(reset|risat|resat|resert|risit|rest|reser|riset)\b", re.IGNORECASE)
OTT_KEYWORDS = re.compile(r"\b(hotstar|zee5|sony|amazon|alt|jio|saavn|ott)\b", re.IGNORECASE)


@dataclass(frozen=True)
class ActionRequest:
    """What a free-form message asks for."""

    code: Optional[str] = None
    session_reset: bool = False
    reactivate: bool = False
    password_reset: bool = False
    ott_issue: bool = False

    @property
    def wants_action(self) -> bool:
        return self.session_reset or self.reactivate or self.password_reset


def parse_action_request(text: str) -> ActionRequest:
    body = (text or "").strip().lower()
    code_match = CODE_PATTERN.search(body)
    if code_match:
        code: Optional[str] = code_match.group(0).lower()
    else:
        id_match = SUBSCRIBER_ID_PATTERN.search(body)
        code = id_match.group(0) if id_match else None
    return ActionRequest(
        code=code,
        session_reset=bool(SESSION_KEYWORDS.search(body)),
        reactivate=bool(REACTIVATE_KEYWORDS.search(body)),
        password_reset=bool(PASSWORD_KEYWORDS.search(body)),
        ott_issue=bool(OTT_KEYWORDS.search(body)),
    )


@dataclass
class OperatorContext:
    user_code: str
    user: Optional[UserRecord] = None


class OperatorContexts:
    """Subscriber context per operator identity."""

    def __init__(self) -> None:
        self._contexts: dict[str, OperatorContext] = {}

    def __contains__(self, identity: str) -> bool:
        return identity in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def seed(self, identity: str, user_code: str) -> OperatorContext:
        context = OperatorContext(user_code)
        self._contexts[identity] = context
        return context

    def get(self, identity: str) -> Optional[OperatorContext]:
        return self._contexts.get(identity)

    def clear(self, identity: str) -> None:
        self._contexts.pop(identity, None)


@dataclass(frozen=True)
class ActionResults:
    session_cleared: Optional[bool] = None
    reactivated: Optional[bool] = None
    password: Optional[PasswordResetResult] = None


def format_action_reply(user: UserRecord, user_code: str, results: ActionResults) -> str:
    lines = [f"*Name:* {title_case(user.name)}", f"*ID:* {user_code}"]
    if results.session_cleared is not None:
        lines.append("*Session Cleared*, Done ✅" if results.session_cleared else "Session not active ❌")
    if results.reactivated is not None:
        lines.append("*Activated*, Done ✅" if results.reactivated else "Failed to active ❌")
    if results.password is not None and results.password.ok:
        lines.append(f"*Default Password:* {user.default_password}")
        lines.append("*Password Reset*, Done ✅")
    return "\n".join(lines)


class AccountActions:
    """Seeds operator context from codes and runs the requested actions.

    A message carrying a hierarchical code or a 5-digit id replaces the
    operator's context. Keywords in the same or a later message pick the
    actions; the context is cleared once they ran.
    """

    def __init__(self, portal: PortalActionClient, reference: ReferenceData,
                 contexts: OperatorContexts, complaints: Optional[ComplaintFlows] = None) -> None:
        self._portal = portal
        self._reference = reference
        self._contexts = contexts
        self._complaints = complaints

    async def handle(self, message: InboundMessage, channel: OperatorChannel) -> bool:
        """Act on ``message``; False when it implied nothing to do."""
        request = parse_action_request(message.body)
        identity = channel.identity
        if request.code:
            self._contexts.seed(identity, request.code)
        context = self._contexts.get(identity)
        if context is None:
            return False

        if request.ott_issue and self._complaints is not None:
            try:
                await self._complaints.register_ott(channel, context.user_code)
            finally:
                self._contexts.clear(identity)
            return True
        if request.wants_action:
            try:
                await self.process(channel, context, request)
            finally:
                self._contexts.clear(identity)
            return True
        return False

    async def resolve_user(self, context: OperatorContext) -> Optional[UserRecord]:
        """Context cache, then the directory, then a portal search."""
        if context.user is None:
            context.user = self._reference.find_user(context.user_code) or await self._portal.fetch_user(
                context.user_code
            )
        return context.user

    async def process(self, channel: OperatorChannel, context: OperatorContext, request: ActionRequest) -> None:
        user = await self.resolve_user(context)
        if user is None:
            logger.info("No user data found for code or ID %s", context.user_code)
            await channel.say(f"Incorrect ID: {context.user_code}")
            return

        session_cleared = reactivated = password = None
        if request.session_reset:
            logger.info("Clearing session of %s", user.username)
            session_cleared = await self._portal.reset_session(user)
        if request.password_reset:
            logger.info("Resetting password of %s", user.username)
            password = await self._portal.reset_password(user)
            if not password.ok:
                logger.warning("Password reset of %s failed on the portal side", user.username)
        if request.reactivate:
            logger.info("Reactivating %s", user.username)
            reactivated = await self._portal.reactivate_id(user)

        results = ActionResults(session_cleared=session_cleared, reactivated=reactivated, password=password)
        await channel.say(format_action_reply(user, context.user_code, results))
