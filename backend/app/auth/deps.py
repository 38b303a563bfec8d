"""Request identity.

Authentication happens in front of this service (gateway or reverse
proxy), which forwards the authenticated user name as `X-Actor`.  The
engine only records it on ledger, tracking and audit columns.

  get_actor → X-Actor header, or "system" when absent
"""

from fastapi import Header

DEFAULT_ACTOR = "system"


async def get_actor(x_actor: str | None = Header(None, max_length=100)) -> str:
    actor = (x_actor or "").strip()
    return actor or DEFAULT_ACTOR
