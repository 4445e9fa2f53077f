"""
FloraLens Backend - Request Context
=====================================

What:  Per-request object carrying the correlation id and resolved session.
How:   Built by a FastAPI dependency and passed explicitly into every
       ScanService call. Services never read request-global state.
Who:   Routes build it; ScanService uses it for ownership checks and logging.
"""

from dataclasses import dataclass
from typing import Any, Dict

from fastapi import Depends, Request

from app.auth import AuthSession, get_current_session
from app.middleware.request_id import get_request_id


@dataclass(frozen=True)
class RequestContext:
    request_id: str
    session: AuthSession

    @property
    def user_id(self) -> str:
        return self.session.user_id

    def log_extra(self, **fields: Any) -> Dict[str, Any]:
        """`extra=` payload for log records emitted on behalf of this request."""
        return {"request_id": self.request_id, "user_id": self.user_id, **fields}


async def get_request_context(
    request: Request,
    session: AuthSession = Depends(get_current_session),
) -> RequestContext:
    return RequestContext(request_id=get_request_id(request), session=session)
