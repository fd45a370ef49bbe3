"""Portal capability: authenticated operations and page parsers."""

from .client import PortalActionClient
from .models import (
    KycDetail,
    KycWorkItem,
    PasswordResetResult,
    PlanForm,
    ProvisioningForm,
    SubscriberRow,
    Ticket,
    UserRecord,
    title_case,
)

__all__ = [
    "PortalActionClient",
    "KycDetail", "KycWorkItem", "PasswordResetResult", "PlanForm", "ProvisioningForm",
    "SubscriberRow", "Ticket", "UserRecord", "title_case",
]
