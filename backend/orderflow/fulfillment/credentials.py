"""
Best-effort extraction of account fields from delivered supplier text.

Suppliers deliver free-form strings such as
"username:alice password:secret" or "user=bob | pass=x | email=b@x.io".
Parsing never fails: text with no recognizable labels yields a Credential
carrying only the raw string, which is always preserved verbatim.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

# Label families, in priority order. Values are the longest run of
# non-whitespace after a ':', '=' or '-' separator, so an unspaced
# "user:a|pass:b" leaves "a|pass:b" in the username.
_USERNAME_LABELS = ("username", "user", "account", "login", "tài khoản")
_PASSWORD_LABELS = ("password", "pass", "mật khẩu")
_TOKEN_LABELS = ("token", "code", "mã")


def _label_pattern(labels: Tuple[str, ...]) -> Pattern:
    alternation = "|".join(re.escape(label) for label in labels)
    return re.compile(
        rf"(?<!\w)(?:{alternation})\s*[:=\-]\s*(\S+)",
        re.IGNORECASE,
    )


CREDENTIAL_PATTERNS: List[Tuple[str, Pattern]] = [
    ("username", _label_pattern(_USERNAME_LABELS)),
    ("password", _label_pattern(_PASSWORD_LABELS)),
    ("token", _label_pattern(_TOKEN_LABELS)),
]

_KNOWN_LABELS = frozenset(_USERNAME_LABELS + _PASSWORD_LABELS + _TOKEN_LABELS)

_PART_SEPARATORS = re.compile(r"[|;,\n]+")
_KEY_VALUE = re.compile(r"^\s*([^:=]+?)\s*[:=]\s*(.+?)\s*$")


@dataclass
class Credential:
    """
    Structured view of one delivered item.

    Attributes:
        raw: Delivered text, verbatim
        username: Account/login name, if labeled
        password: Password, if labeled
        token: Token or code, if labeled
        extra: Other labeled key/value pairs, if any
    """
    raw: str
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    extra: Optional[Dict[str, str]] = None

    @property
    def is_structured(self) -> bool:
        """True if any field beyond raw was recognized."""
        return any((self.username, self.password, self.token, self.extra))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"raw": self.raw}
        for key in ("username", "password", "token", "extra"):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data


def _extract_extra(raw: str) -> Dict[str, str]:
    extra: Dict[str, str] = {}
    for part in _PART_SEPARATORS.split(raw):
        match = _KEY_VALUE.match(part)
        if not match:
            continue
        key = match.group(1).strip().lower()
        value = match.group(2)
        if not key or key in _KNOWN_LABELS or any(ch.isspace() for ch in key):
            continue
        extra.setdefault(key, value)
    return extra


def parse_credential(raw: Any) -> Credential:
    """
    Parse one delivered string into a Credential.

    Args:
        raw: Delivered text (non-strings are coerced with str(), None to "")

    Returns:
        Credential whose raw field equals the input text
    """
    if raw is None:
        raw = ""
    elif not isinstance(raw, str):
        raw = str(raw)

    credential = Credential(raw=raw)
    for field_name, pattern in CREDENTIAL_PATTERNS:
        match = pattern.search(raw)
        if match:
            setattr(credential, field_name, match.group(1))

    extra = _extract_extra(raw)
    if extra:
        credential.extra = extra

    return credential


def parse_credentials(raws: Iterable[Any]) -> List[Credential]:
    """Parse every delivered item, preserving order."""
    return [parse_credential(raw) for raw in raws]


def serialize_credentials(credentials: Iterable[Credential]) -> str:
    """Serialize credentials as the order's delivery payload (JSON array)."""
    return json.dumps([c.to_dict() for c in credentials], ensure_ascii=False)
