import re

from .errors import InvalidNumberError

INDIVIDUAL_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"
TRUNK_PREFIX = "0"
DEFAULT_COUNTRY_CODE = "62"

_NON_DIGITS = re.compile(r"\D")


def is_group(chat_id: str) -> bool:
    return chat_id.endswith(GROUP_SUFFIX)


def normalize(value, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Map a user supplied phone number or group id to a chat id.

    Group ids pass through untouched. Everything else is reduced to its
    digits, a leading trunk prefix is swapped for the country code and the
    individual chat suffix is appended.
    """
    text = str(value or "").strip()
    if is_group(text):
        return text

    digits = _NON_DIGITS.sub("", text)
    if not digits:
        raise InvalidNumberError(f"Invalid number: {value!r}")

    if digits.startswith(TRUNK_PREFIX):
        digits = country_code + digits[len(TRUNK_PREFIX):]
    return digits + INDIVIDUAL_SUFFIX


def display_form(chat_id: str) -> str:
    """Strip the chat domain suffix for logs and webhook payloads."""
    for suffix in (INDIVIDUAL_SUFFIX, GROUP_SUFFIX):
        if chat_id.endswith(suffix):
            return chat_id[: -len(suffix)]
    return chat_id
