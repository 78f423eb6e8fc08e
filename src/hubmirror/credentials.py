# src/hubmirror/credentials.py
"""
Registry credential tokens.

The engine accepts registry credentials as an opaque header value: the JSON
serialization of a username/password pair, base64-encoded with the URL-safe
alphabet. Tokens are built once per registry when the engine client handle
is constructed and are never logged.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any


def encode_auth_token(username: str, password: str) -> str:
    """
    Encode a username/password pair as an engine credential token.

    Deterministic: the same pair always yields the same token.

    Example:
        >>> decode_auth_token(encode_auth_token("u", "p"))
        {'Username': 'u', 'Password': 'p'}
    """
    payload = json.dumps({"Username": username, "Password": password}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_auth_token(token: str) -> dict[str, Any]:
    """Decode a credential token back into its JSON object."""
    return json.loads(base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8"))


@dataclass(frozen=True)
class RegistryCredentials:
    """Login for one registry. The password never appears in ``repr``."""

    domain: str
    username: str = ""
    password: str = field(default="", repr=False)

    @property
    def token(self) -> str:
        return encode_auth_token(self.username, self.password)
