from typing import Sequence

from gosafe.tracking.models import EmergencyContact, GateDecision

MSG_SIGN_IN = "Sign in to use SOS."


def can_dispatch(is_authenticated: bool, contacts: Sequence[EmergencyContact]) -> GateDecision:
    # an empty list is a remediation prompt (go add contacts), not a failure
    if not is_authenticated:
        return GateDecision.BLOCKED_NO_AUTH
    if len(contacts) == 0:
        return GateDecision.BLOCKED_NO_CONTACTS
    return GateDecision.ALLOWED
