"""
PDFSign Backend: Identity Provider
====================================

What:  Verifies `Authorization: Bearer <token>` headers and yields the caller
       id that owns signature records.
How:   Tokens are itsdangerous URL-safe timed signatures over {"uid": ...}
       with a fixed salt. Expiry is enforced with TOKEN_TTL_SECONDS.
Who:   `require_caller` is the FastAPI dependency used by every mutating
       route. `issue_token` is used by operators and tests to mint tokens.

Account management (registration, login, password reset) lives outside this
service; anything that can sign a payload with SECRET_KEY can issue tokens.
"""

import logging

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from pdfsign.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

TOKEN_SALT = "pdfsign-auth"


class TokenIdentityProvider:

    def __init__(self, secret_key: str, token_ttl_seconds: int = 86_400):
        self._serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self.token_ttl_seconds = token_ttl_seconds

    def issue_token(self, caller_id: str) -> str:
        return self._serializer.dumps({"uid": str(caller_id)})

    def authenticate(self, authorization: str) -> str:
        """
        Return the caller id carried by a bearer header.

        Raises:
            UnauthorizedError: missing/malformed header, bad signature,
                expired token, or a payload without a uid.
        """
        if not authorization or not authorization.startswith("Bearer "):
            raise UnauthorizedError()
        token = authorization.split(" ", 1)[1].strip()
        if not token:
            raise UnauthorizedError()

        try:
            data = self._serializer.loads(token, max_age=self.token_ttl_seconds)
        except SignatureExpired:
            raise UnauthorizedError(message="Token expired")
        except BadSignature:
            logger.info("Rejected bearer token with bad signature")
            raise UnauthorizedError(message="Invalid token")

        caller_id = data.get("uid") if isinstance(data, dict) else None
        if not caller_id:
            raise UnauthorizedError(message="Invalid token")
        return str(caller_id)


async def require_caller(request: Request) -> str:
    """FastAPI dependency: authenticated caller id, or 401 via UnauthorizedError."""
    identity: TokenIdentityProvider = request.app.state.identity
    return identity.authenticate(request.headers.get("Authorization", ""))
