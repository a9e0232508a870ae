"""FastAPI dependencies shared by the routers."""

import uuid
from typing import Annotated

from fastapi import Header, HTTPException, status


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header()] = None,
) -> uuid.UUID | None:
    """Acting user for audit entries, taken from the X-Actor-ID header.

    Requests without the header are recorded as system actions.
    """
    if not x_actor_id:
        return None
    try:
        return uuid.UUID(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-ID must be a UUID.",
        )
