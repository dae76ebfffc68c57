import re

CHAT_DOMAIN = "s.whatsapp.net"
DEFAULT_COUNTRY_CODE = "972"

_SEPARATORS = re.compile(r"[\s-]")


def to_chat_address(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Convert a phone number typed by the operator into a chat address.

    0501234567      -> 972501234567@s.whatsapp.net  (local 10-digit number)
    +44 7700-900123 -> 447700900123@s.whatsapp.net
    """
    cleaned = _SEPARATORS.sub("", phone)

    if cleaned.startswith("0") and len(cleaned) == 10:
        return f"{country_code}{cleaned[1:]}@{CHAT_DOMAIN}"

    if cleaned.startswith("+"):
        return f"{cleaned[1:]}@{CHAT_DOMAIN}"

    return f"{cleaned}@{CHAT_DOMAIN}"
