"""Tests for SLA incident creation."""
from urllib.parse import parse_qs

import httpx
import pytest

from portalbot.config import SlaConfig
from portalbot.errors import AuthenticationError, ValidationError
from portalbot.flows.sla import SUBJECTS, SlaClient, SlaTicketFlow, format_subjects, incident_query
from tests.conftest import ScriptedChannel

CONFIG = SlaConfig(base_url="https://sla.example.com", username="msp", password="pw")


class SlaDesk:
    def __init__(self, login_status: int = 303, set_cookie: bool = True, ticket_id: object = "T-900") -> None:
        self.login_status = login_status
        self.set_cookie = set_cookie
        self.ticket_id = ticket_id
        self.incidents: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/rlogin/index":
            headers = {"location": "/dashboard"}
            if self.set_cookie:
                headers["set-cookie"] = "ci_session=sla-sess; Path=/"
            return httpx.Response(self.login_status, headers=headers)
        if path == "/mspcntl/addmspincident":
            self.incidents.append(request)
            return httpx.Response(200, text="ok")
        if path == "/mspcntl/msp_incident_details_ajax":
            assert request.headers["Cookie"] == "ci_session=sla-sess"
            rows = [{"ticketid": self.ticket_id}] if self.ticket_id else []
            return httpx.Response(200, json={"data": rows})
        return httpx.Response(404)


def _client(desk: SlaDesk) -> SlaClient:
    return SlaClient(CONFIG, http=httpx.AsyncClient(transport=httpx.MockTransport(desk)))


class TestHelpers:
    def test_subject_menu(self) -> None:
        menu = format_subjects()
        assert len(SUBJECTS) == 50
        assert menu.startswith("Subject:\n1. Activate with available balance")
        assert menu.endswith("50. Wrong recharge")

    def test_incident_query_asks_for_newest_row(self) -> None:
        query = incident_query()
        assert query["length"] == "1"
        assert query["incident_status"] == "Pending"
        assert query["columns[0][data]"] == "ticketid"


class TestSlaClient:
    @pytest.mark.asyncio
    async def test_login_reads_cookie(self) -> None:
        async with _client(SlaDesk()) as client:
            assert await client.login() == "sla-sess"

    @pytest.mark.asyncio
    async def test_login_without_redirect(self) -> None:
        async with _client(SlaDesk(login_status=200)) as client:
            with pytest.raises(AuthenticationError, match="HTTP 200"):
                await client.login()

    @pytest.mark.asyncio
    async def test_login_without_cookie(self) -> None:
        async with _client(SlaDesk(set_cookie=False)) as client:
            with pytest.raises(AuthenticationError, match="No session cookie"):
                await client.login()


class TestSlaTicketFlow:
    @pytest.mark.asyncio
    async def test_creates_incident(self) -> None:
        desk = SlaDesk()
        channel = ScriptedChannel("26", "Upgrade to 100 Mbps", "YES")
        async with _client(desk) as client:
            await SlaTicketFlow(client).run(channel)

        assert channel.asked[1:] == ["Enter description:", "✅ Do you want to send the request? Type *yes* or *no*."]
        assert channel.said == ["✅ Incident created successfully! Ticket ID: #T-900"]
        body = desk.incidents[0].content.decode()
        assert 'name="subject"' in body
        assert "Package change" in body
        assert "Upgrade to 100 Mbps" in body

    @pytest.mark.asyncio
    async def test_declined_confirmation(self) -> None:
        desk = SlaDesk()
        channel = ScriptedChannel("1", "desc", "no")
        async with _client(desk) as client:
            await SlaTicketFlow(client).run(channel)
        assert channel.said == ["🚫 Request canceled."]
        assert desk.incidents == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["0", "51", "abc"])
    async def test_invalid_subject(self, answer: str) -> None:
        async with _client(SlaDesk()) as client:
            with pytest.raises(ValidationError, match="Invalid subject selection"):
                await SlaTicketFlow(client).run(ScriptedChannel(answer))

    @pytest.mark.asyncio
    async def test_login_failure_reported(self) -> None:
        channel = ScriptedChannel()
        async with _client(SlaDesk(login_status=500)) as client:
            await SlaTicketFlow(client).run(channel)
        assert channel.said == ["❌ Failed to create SLA ticket."]
        assert channel.asked == []

    @pytest.mark.asyncio
    async def test_missing_ticket_id(self) -> None:
        channel = ScriptedChannel("1", "desc", "yes")
        async with _client(SlaDesk(ticket_id=None)) as client:
            await SlaTicketFlow(client).run(channel)
        assert channel.said == ["⚠️ Incident submitted but no ticket ID found."]
