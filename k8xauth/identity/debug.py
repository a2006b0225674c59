"""
k8xauth.identity.debug

Pretty printing of source identity tokens for troubleshooting.
"""

import json
import sys
from typing import Any, Dict, Optional, TextIO

import jwt

from .exceptions import InvalidTokenError


def decode_jwt_parts(token: str) -> Dict[str, Any]:
    """
    Split a JWT into its decoded header, payload and raw signature.

    The signature is not verified.

    Raises:
        InvalidTokenError: If the token is not a well formed JWT
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise InvalidTokenError("error decoding token: JWT must have three parts")

    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError as e:
        raise InvalidTokenError(f"error decoding token: {e}")

    return {"header": header, "payload": payload, "signature": parts[2]}


def pretty_print_jwt(token: str, stream: Optional[TextIO] = None) -> None:
    """Write the decoded token as indented JSON to stderr. May expose sensitive claims."""
    stream = stream or sys.stderr
    stream.write(json.dumps(decode_jwt_parts(token), indent=2) + "\n")
