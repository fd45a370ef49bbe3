"""Interactive plan change for one subscriber."""
import logging
from datetime import datetime
from typing import Optional

from portalbot.conversation.coordinator import OperatorChannel
from portalbot.errors import ValidationError
from portalbot.portal.client import PortalActionClient
from portalbot.portal.models import SubscriberRow

logger = logging.getLogger(__name__)

_RENEWAL_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%d-%b-%Y")


def renewal_expired(row: SubscriberRow, now: Optional[datetime] = None) -> bool:
    """True when the row's next renewal date is in the past."""
    for fmt in _RENEWAL_FORMATS:
        try:
            renewal = datetime.strptime(row.next_renewal.strip(), fmt)
        except ValueError:
            continue
        return renewal < (now or datetime.now())
    return False


def format_candidates(query: str, rows: list[SubscriberRow]) -> str:
    lines = [f'Found {len(rows)} users matching "{query}":', ""]
    for index, row in enumerate(rows, start=1):
        state = "Active" if row.is_active else "Inactive"
        expired = " Expired" if renewal_expired(row) else ""
        lines += [
            f"{index}. {state} *{row.username}* (ID: {row.id})",
            f"Mobile: {row.mobile}",
            f"Renewal: {row.next_renewal}{expired}",
            f"Last Login: {row.last_login}",
            "",
        ]
    lines.append(f"Please reply with the no. (1-{len(rows)}) to select:")
    return "\n".join(lines)


class PlanChangeFlow:
    def __init__(self, portal: PortalActionClient) -> None:
        self._portal = portal

    async def run(self, channel: OperatorChannel) -> None:
        """Ask for a username and a package, pick the subscriber, apply.

        Raises:
            ValidationError: An answer was empty or out of range.
        """
        query = await channel.ask("Username:")
        if not query:
            raise ValidationError("Username cannot be empty.")
        package_id = await channel.ask("Package ID:")
        if not package_id:
            raise ValidationError("Package ID cannot be empty.")

        rows = await self._portal.search_subscribers(query)
        if not rows:
            await channel.say(f'❌ No users found matching "{query}"')
            return

        selected = await self._select(channel, query, rows)
        form = await self._portal.fetch_plan_form(selected.link)
        if await self._portal.change_plan(form, package_id, selected.username):
            logger.info("Plan of %s changed to %s", selected.username, package_id)
            await channel.say(
                f"✅ Plan changed successfully\n\nID: {selected.username}!\nNew Package ID: {package_id}"
            )
        else:
            await channel.say(f"❌ Failed to change plan for {selected.username}. Check package ID and try again.")

    async def _select(self, channel: OperatorChannel, query: str, rows: list[SubscriberRow]) -> SubscriberRow:
        exact = next((r for r in rows if r.username.lower() == query.lower()), None)
        if exact is not None:
            await channel.say(f"ID: {exact.id}\nExact match: {exact.username}\nProceeding Change..")
            return exact

        answer = await channel.ask(format_candidates(query, rows))
        try:
            choice = int(answer)
        except ValueError:
            choice = 0
        if not 1 <= choice <= len(rows):
            raise ValidationError("❌ Invalid selection.")
        return rows[choice - 1]
