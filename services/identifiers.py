import re

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^a-z0-9_]")


def normalize_identifier(raw) -> str:
    """
    Canonical form of a registration/roll number used as the lookup key.

    "  AB 12-34 " -> "ab1234". Anything that reduces to "" is not a valid key.
    """
    if raw is None:
        return ""
    text = str(raw).strip().lower()
    text = _WHITESPACE.sub("", text)
    return _NON_WORD.sub("", text)
