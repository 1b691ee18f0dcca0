"""Front resource ID prefixes

Front IDs look like ``cnv_abc123``: a three-letter kind, an underscore and an
opaque body. Unknown or malformed prefixes are never rejected locally so that
the API decides about kinds this table does not know yet.
"""

from typing import NamedTuple, Optional

from .errors import WrongResourceTypeError

PREFIX_LENGTH = 4
SEPARATOR = "_"

RESOURCE_PREFIXES = {
    "cnv_": "conversation",
    "msg_": "message",
    "cmt_": "comment",
    "tea_": "teammate",
    "tag_": "tag",
    "inb_": "inbox",
    "cha_": "channel",
    "crd_": "contact",
}


class ResourceID(NamedTuple):
    """Parsed resource ID; ``prefix`` is empty when the input was malformed"""
    prefix: str
    body: str

    @classmethod
    def parse(cls, text: str) -> "ResourceID":
        prefix = extract_prefix(text)
        if not prefix:
            return cls(prefix="", body=text or "")
        return cls(prefix=prefix, body=text[PREFIX_LENGTH:])

    @property
    def is_valid(self) -> bool:
        return bool(self.prefix)

    @property
    def resource_type(self) -> str:
        return RESOURCE_PREFIXES.get(self.prefix, "")

    def __str__(self) -> str:
        return f"{self.prefix}{self.body}"


def extract_prefix(id: str) -> str:
    """Return the ``xxx_`` prefix of an ID, or '' if it has none"""
    if not id or len(id) < PREFIX_LENGTH:
        return ""
    if id[PREFIX_LENGTH - 1] != SEPARATOR:
        return ""
    return id[:PREFIX_LENGTH]


def resource_type(id: str) -> str:
    """Resource kind for an ID ('conversation', 'message', ...) or '' if unknown"""
    return RESOURCE_PREFIXES.get(extract_prefix(id), "")


def prefix_for(resource: str) -> Optional[str]:
    """Reverse lookup: the ID prefix used by a resource kind"""
    for prefix, kind in RESOURCE_PREFIXES.items():
        if kind == resource:
            return prefix
    return None


def validate_id_prefix(id: str, expected_prefix: str) -> None:
    """Check that an ID belongs to the expected resource kind

    Passes when the prefix matches, and also when the prefix is unknown or
    malformed (the API is left to reject those).

    Raises:
        WrongResourceTypeError: The ID has a known prefix of another kind
    """
    actual_prefix = extract_prefix(id)
    if actual_prefix == expected_prefix:
        return

    actual_type = RESOURCE_PREFIXES.get(actual_prefix, "")
    if not actual_type:
        return

    expected_type = RESOURCE_PREFIXES.get(expected_prefix, expected_prefix)
    raise WrongResourceTypeError(expected_type=expected_type, actual_type=actual_type, id=id)
