"""
Stateless session tokens (HS256 JWT).

One TokenService is built per process and handed to the guard; there is no
revocation list, logout is the client discarding its token.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt  # PyJWT

from errors import TokenExpired, TokenInvalid

ALGORITHM = "HS256"


class TokenService:
    def __init__(self, secret: str, expire_minutes: int = 60 * 24 * 7):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.expire_minutes = expire_minutes

    def issue(self, user: Dict[str, Any], now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        exp = now + timedelta(minutes=self.expire_minutes)
        payload = {
            "sub": str(user["_id"]),
            "role": user.get("role", "user"),
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> Dict[str, str]:
        """Return {"user_id", "role"} from a token with a valid signature and expiry.

        jwt.decode checks the signature before it looks at any claim.
        """
        try:
            data = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidTokenError:
            raise TokenInvalid()
        return {"user_id": str(data["sub"]), "role": data.get("role", "user")}
