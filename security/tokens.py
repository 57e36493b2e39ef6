from dataclasses import dataclass
from typing import Optional, Sequence

import jwt

DEFAULT_DISPLAY_NAME = "Usuario"


class TokenError(Exception):
    pass


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    display_name: str = DEFAULT_DISPLAY_NAME


def bearer_token(header_value: Optional[str]) -> Optional[str]:
    if not header_value or not header_value.startswith("Bearer "):
        return None
    token = header_value[len("Bearer "):].strip()
    return token or None


def decode_identity(token: str, secret: str, algorithms: Sequence[str] = ("HS256",)) -> Identity:
    """
    Verify the token signature/expiry and map its claims to an Identity.
    Accepts userId or sub for the id, nombre or name for the display name.
    """
    try:
        claims = jwt.decode(token, secret, algorithms=list(algorithms))
    except jwt.PyJWTError as exc:
        raise TokenError("Invalid or expired token") from exc

    user_id = claims.get("userId") or claims.get("sub")
    if not user_id:
        raise TokenError("Token has no user id")

    return Identity(
        user_id=str(user_id),
        email=claims.get("email") or None,
        display_name=claims.get("nombre") or claims.get("name") or DEFAULT_DISPLAY_NAME,
    )
