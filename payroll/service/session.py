"""
Resolution of the payroll class an inbound request works on.

The class is read from the verified claims of the request's bearer token
(``current_class``, else ``primary_class``). Nothing else on the request can
choose it. Switching class means asking for a new token, see
:meth:`SessionResolver.issue_token`.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import jwt
import structlog

from payroll.exceptions.app import UnauthorizedException
from payroll.settings.jwt import JWTConfig

logger = structlog.get_logger(__name__)

# Claims rewritten on every issued token.
REISSUED_CLAIMS = ("exp", "iat", "current_class")


@dataclass(frozen=True)
class RequestSession:
    """What the boundary learned about one request."""

    session_id: str
    payroll_class: Optional[str] = None
    user_id: Optional[str] = None
    claims: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def authenticated(self) -> bool:
        return bool(self.claims)

    @property
    def primary_class(self) -> Optional[str]:
        return self.claims.get("primary_class")


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


class SessionResolver:
    """Reads session and payroll class from the request's bearer token."""

    def __init__(self, jwt_config: JWTConfig):
        self.jwt_config = jwt_config

    def decode_token(self, token: str) -> dict:
        """Verify a bearer token and return its claims.

        Raises:
            UnauthorizedException: If the token is invalid or expired
        """
        try:
            return jwt.decode(
                token,
                self.jwt_config.SECRET_KEY,
                algorithms=[self.jwt_config.ALGORITHM],
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token has expired")
            raise UnauthorizedException("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning("Invalid token", error=str(e))
            raise UnauthorizedException("Invalid token")

    def issue_token(self, session: RequestSession, current_class: str) -> IssuedToken:
        """Sign a token carrying the claims of ``session`` with another class.

        User and primary class claims are kept; ``current_class``, ``iat``
        and ``exp`` are set anew.

        Raises:
            UnauthorizedException: If the request carried no verified token
        """
        if not session.authenticated:
            raise UnauthorizedException("Authentication required")

        now = datetime.now(timezone.utc)
        expire = now + timedelta(minutes=self.jwt_config.ACCESS_TOKEN_EXPIRE_MINUTES)
        payload = {
            key: value
            for key, value in session.claims.items()
            if key not in REISSUED_CLAIMS
        }
        payload.update(current_class=current_class, iat=now, exp=expire)

        token = jwt.encode(
            payload, self.jwt_config.SECRET_KEY, algorithm=self.jwt_config.ALGORITHM
        )
        logger.info(
            "Payroll class token issued",
            user_id=session.user_id,
            current_class=current_class,
            expires_at=expire.isoformat(),
        )
        return IssuedToken(token=token, expires_at=expire)

    def _bearer_token(self, headers: Mapping[str, str]) -> Optional[str]:
        authorization = headers.get("authorization")
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != self.jwt_config.TOKEN_TYPE.lower() or not token:
            return None
        return token.strip()

    def resolve(self, headers: Mapping[str, str], request_id: str) -> RequestSession:
        """Build the session of one request.

        The session id is the request id, so two requests of the same user
        never share a binding. Requests without a bearer token get no
        payroll class and run on the default schema.
        """
        claims: dict = {}
        token = self._bearer_token(headers)
        if token:
            claims = self.decode_token(token)

        payroll_class = claims.get("current_class") or claims.get("primary_class")
        user_id = claims.get("user_id") or claims.get("sub")
        return RequestSession(
            session_id=request_id,
            payroll_class=payroll_class or None,
            user_id=str(user_id) if user_id is not None else None,
            claims=claims,
        )
