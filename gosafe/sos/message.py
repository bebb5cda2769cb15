import re
from typing import Optional
from urllib.parse import quote

from gosafe.config import settings
from gosafe.tracking.models import Coordinate
from gosafe.utils.geo import maps_link

LOCATION_UNAVAILABLE = "Location unavailable"

# Contacts' messaging apps already parse this layout; keep it byte for byte.
ALERT_TEMPLATE = (
    "🆘 *SOS ALERT from GoSafe*\n\n"
    "I need help! I'm currently travelling and may be in danger.\n\n"
    "📍 *My live location:*\n{location}\n\n"
    "🛣️ *Route:* {origin} → {destination}\n\n"
    "Please check on me immediately. This message was sent via GoSafe."
)

_NON_DIGITS = re.compile(r"[^0-9]")
# same unreserved set as JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "!~*'()"


def compose_alert(location: Optional[Coordinate], origin_label: str, dest_label: str) -> str:
    link = maps_link(location) if location is not None else LOCATION_UNAVAILABLE
    return ALERT_TEMPLATE.format(location=link, origin=origin_label, destination=dest_label)


def normalize_phone(phone: str) -> str:
    return _NON_DIGITS.sub("", phone or "")


def deep_link(phone: str, message: str, base_url: str | None = None) -> str:
    """WhatsApp click-to-chat URL addressed to ``phone`` with ``message`` prefilled."""
    base = (base_url or settings.messaging_base_url).rstrip("/")
    return f"{base}/{normalize_phone(phone)}?text={quote(message, safe=_URI_COMPONENT_SAFE)}"
