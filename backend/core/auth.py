from typing import Optional

from fastapi import Header

DEFAULT_ACTOR = "admin"


async def current_actor(x_actor: Optional[str] = Header(default=None)) -> str:
    """
    Who is changing stock. Authentication happens upstream; the gateway forwards
    the operator's identity in the X-Actor header.
    """
    actor = (x_actor or "").strip()
    return actor[:120] or DEFAULT_ACTOR
