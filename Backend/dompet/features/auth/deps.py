from typing import Annotated, Optional
from uuid import UUID

from fastapi import Header, HTTPException, status


async def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None
) -> UUID:
    """
    Identity of the caller as asserted by the upstream auth gateway.
    Sign-in and token verification happen before requests reach this service.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed X-User-Id header"
        )
