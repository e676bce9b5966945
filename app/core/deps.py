"""FastAPI dependencies shared by the API routers."""

import hmac
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import settings
from app.services.sequence_executor import SequenceExecutor, build_executor

optional_security = HTTPBearer(auto_error=False)


async def verify_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>`.

    An unset CRON_SECRET rejects every request.
    """
    if (
        not settings.CRON_SECRET
        or credentials is None
        or not hmac.compare_digest(credentials.credentials, settings.CRON_SECRET)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_sequence_executor() -> SequenceExecutor:
    return build_executor()
