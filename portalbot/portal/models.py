"""Records read from and written to the portal."""
from dataclasses import dataclass, field
from typing import Optional


def title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in (text or "").split())


@dataclass(frozen=True)
class SubscriberRow:
    """One row of the subscriber search results table."""

    id: str
    username: str
    link: str
    last_login: str = ""
    next_renewal: str = ""
    mobile: str = ""

    @property
    def is_active(self) -> bool:
        return "no login" not in self.last_login.lower()


@dataclass(frozen=True)
class UserRecord:
    username: str
    name: str
    mobile_no: str
    subscriber_id: str
    email: str = ""

    @property
    def first_name(self) -> str:
        parts = title_case(self.name).split(" ")
        return parts[0].lower() if parts else ""

    @property
    def default_password(self) -> str:
        """Password the portal assigns after a reset."""
        return f"{self.first_name}123"


@dataclass(frozen=True)
class PasswordResetResult:
    portal_reset: bool
    pppoe_reset: bool

    @property
    def ok(self) -> bool:
        return self.portal_reset and self.pppoe_reset


@dataclass(frozen=True)
class PlanForm:
    subid: str
    status: str
    old_package_id: str
    verify_hidden: str


@dataclass(frozen=True)
class KycWorkItem:
    """A pending application form on the KYC worklist."""

    remote_id: str
    link: str
    status: str


@dataclass(frozen=True)
class KycDetail:
    """Fields of a submitted application form.

    ``evidence_present`` is False when the address proof is marked as
    missing on the form.
    """

    mobile_no: str
    evidence_present: bool
    associated_partner: str = ""
    fields: tuple[tuple[str, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProvisioningForm:
    """Hidden inputs of a verified form, needed to create a subscription."""

    firstname: str
    oltabid: str
    pggroupid: str
    pkgid: str
    anp: str = ""
    vlanid: str = ""
    caf_type: str = ""
    mobileno: str = ""
    existing_username: str = ""

    @property
    def first_name(self) -> str:
        return self.firstname.split(" ")[0].lower() if self.firstname else ""

    @property
    def complete(self) -> bool:
        return bool(self.oltabid and self.pggroupid and self.pkgid)


@dataclass(frozen=True)
class Ticket:
    ticket_id: str
    view_url: str
    status: str
    subject: str
    subscriber_id: Optional[str] = None
