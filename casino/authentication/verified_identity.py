import logging
import secrets
from typing import Optional

from fastapi import Header, Request

from casino.errors import Unauthorized
from casino.services.audit import RequestContext

MAX_USER_ID_LENGTH = 128


class VerifiedIdentity:
    """Identity handed over by the upstream gateway.

    The gateway authenticates the user and forwards ``X-User-Id``. When a
    gateway token is configured, requests without the matching
    ``X-Gateway-Token`` are rejected.
    """

    @staticmethod
    def client_ip(request: Request) -> Optional[str]:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
        return request.client.host if request.client else None

    @staticmethod
    async def check_user(
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
        x_gateway_token: Optional[str] = Header(default=None),
    ) -> str:
        """Check the forwarded identity

        Raises:
            Unauthorized: the user id is missing or the gateway token does not match

        Returns:
            str: Verified user id
        """
        expected_token = getattr(request.app.state, "gateway_token", None)
        if expected_token:
            if x_gateway_token is None or not secrets.compare_digest(
                x_gateway_token.encode(), expected_token.encode()
            ):
                client_ip = VerifiedIdentity.client_ip(request)
                logging.warning(f"Rejected request with invalid gateway token from {client_ip}")
                raise Unauthorized("Invalid gateway token")

        user_id = (x_user_id or "").strip()
        if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
            raise Unauthorized()
        return user_id

    @staticmethod
    async def request_context(
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
        x_gateway_token: Optional[str] = Header(default=None),
    ) -> RequestContext:
        user_id = await VerifiedIdentity.check_user(request, x_user_id, x_gateway_token)
        return RequestContext(
            user_id=user_id,
            ip_address=VerifiedIdentity.client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
