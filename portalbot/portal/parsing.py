"""HTML parsers for portal pages."""
import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

from .models import KycDetail, KycWorkItem, PlanForm, ProvisioningForm, SubscriberRow, Ticket

_TICKET_LINK = re.compile(r"/billticketview/(\d+)/")

# Profile rows left out of the summary sent to operators.
EXCLUDED_PROFILE_FIELDS = (
    "notice",
    "reason for kyc rejection",
    "address type",
    "id no",
    "door no",
    "street",
    "applied package",
)

MISSING_FILE_MARKER = "file not exists"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _text(node: Optional[Tag]) -> str:
    return node.get_text(strip=True) if node is not None else ""


def _attr(node: Optional[Tag], name: str) -> str:
    if node is None:
        return ""
    value = node.get(name)
    return str(value).strip() if value else ""


def parse_search_rows(html: str) -> list[SubscriberRow]:
    rows = []
    for tr in _soup(html).select("table.table-striped tbody tr"):
        cells = tr.find_all("td")
        if len(cells) < 2:
            continue
        anchor = cells[1].find("a")
        username = _text(anchor)
        link = _attr(anchor, "href")
        if not username or not link:
            continue
        rows.append(SubscriberRow(
            id=_text(cells[0]),
            username=username,
            link=link,
            last_login=_text(cells[3]) if len(cells) > 3 else "",
            next_renewal=_text(cells[4]) if len(cells) > 4 else "",
            mobile=_text(cells[5]) if len(cells) > 5 else "",
        ))
    return rows


def parse_detail_field(html: str, label: str) -> Optional[str]:
    """Value next to ``label`` in a subscriber detail table."""
    for tr in _soup(html).select("table.table-bordered.table-condensed.table-striped tr"):
        cells = tr.find_all("td")
        if len(cells) >= 2 and _text(cells[0]) == label:
            return _text(cells[1])
    return None


def parse_plan_form(html: str) -> PlanForm:
    soup = _soup(html)
    return PlanForm(
        subid=_attr(soup.select_one("#subid"), "value"),
        status=_attr(soup.select_one("#status"), "value"),
        old_package_id=_attr(soup.select_one("#oldpackageid"), "value"),
        verify_hidden=_attr(soup.select_one("#verifyHidden"), "value"),
    )


def parse_kyc_worklist(html: str) -> list[KycWorkItem]:
    items = []
    for tr in _soup(html).select("table tbody tr"):
        cells = tr.find_all("td")
        if len(cells) < 3:
            continue
        link = _attr(cells[2].find("a"), "href")
        if not link:
            continue
        parts = link.split("/")
        remote_id = parts[3] if len(parts) > 3 else link
        items.append(KycWorkItem(remote_id=remote_id, link=link, status=_text(cells[1]).lower()))
    return items


def _profile_value(soup: BeautifulSoup, label: str) -> Optional[Tag]:
    for name in soup.select(".profile-info-name"):
        if label in name.get_text():
            sibling = name.find_next_sibling()
            if sibling is not None:
                return sibling
    return None


def parse_kyc_detail(html: str, base_url: str = "") -> KycDetail:
    soup = _soup(html)

    proof = _profile_value(soup, "Address Proof Copy")
    proof_span = proof.find("span") if proof is not None else None
    evidence_present = not (proof_span is not None and _text(proof_span).lower() == MISSING_FILE_MARKER)

    mobile = _profile_value(soup, "Mobile No.")
    mobile_no = _text(mobile.find("span")) if mobile is not None else ""

    partner = _profile_value(soup, "Associated Partner")

    fields = []
    for row in soup.select(".profile-info-row"):
        name = _text(row.select_one(".profile-info-name"))
        value_span = row.select_one(".profile-info-value span")
        value = _text(value_span)
        anchor = value_span.find("a") if value_span is not None else None
        if anchor is not None:
            value = f"View >> {base_url}{_attr(anchor, 'href')}"
        if any(excluded in name.lower() for excluded in EXCLUDED_PROFILE_FIELDS):
            continue
        fields.append((name, value))

    return KycDetail(
        mobile_no=mobile_no,
        evidence_present=evidence_present,
        associated_partner=_text(partner).lower(),
        fields=tuple(fields),
    )


def parse_provisioning_form(html: str) -> ProvisioningForm:
    soup = _soup(html)

    def field_value(name: str) -> str:
        return _attr(soup.select_one(f"input[name={name}]"), "value").lower()

    vlan = soup.select_one("select#vlanid option[selected]") or soup.select_one("select#vlanid option")
    existing = _attr(soup.select_one("input#uname"), "value") or _attr(soup.select_one("input#dusername_org"), "value")
    return ProvisioningForm(
        firstname=field_value("firstname"),
        oltabid=field_value("oltabid"),
        pggroupid=field_value("pggroupid"),
        pkgid=field_value("pkgid"),
        anp=field_value("anp"),
        vlanid=_attr(vlan, "value").lower(),
        caf_type=field_value("caf_type"),
        mobileno=field_value("mobileno"),
        existing_username=existing,
    )


def parse_ticket_rows(html: str) -> list[Ticket]:
    tickets = []
    for tr in _soup(html).select("table#results tbody tr"):
        cells = tr.find_all("td")
        if not cells:
            continue
        link = _attr(cells[-1].find("a"), "href")
        match = _TICKET_LINK.search(link)
        if not match:
            continue
        tickets.append(Ticket(
            ticket_id=match.group(1),
            view_url=link,
            status=_text(cells[7]).lower() if len(cells) > 7 else "",
            subject=_text(cells[4]).lower() if len(cells) > 4 else "",
        ))
    return tickets


def parse_ticket_subscriber(html: str) -> Optional[str]:
    for tr in _soup(html).select("table.table-bordered.table-striped.table-condensed tbody tr"):
        cells = tr.find_all("td")
        if len(cells) >= 2 and _text(cells[0]).lower() == "subscriber":
            return _text(cells[1]) or None
    return None


def find_link(html: str, prefix: str) -> Optional[str]:
    return _attr(_soup(html).select_one(f'a[href^="{prefix}"]'), "href") or None


def has_element(html: str, selector: str) -> bool:
    return _soup(html).select_one(selector) is not None
