"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, Header

from gradebook.core.clock import Clock, get_clock
from gradebook.core.exceptions import ValidationError


class ActorContext:
    """Identity of the already-authenticated caller.

    Authentication and role checks happen upstream; the core only records
    who performed a write.
    """

    def __init__(self, user_id: int, clock: Clock):
        self.user_id = user_id
        self.clock = clock


def get_actor(
    clock: Annotated[Clock, Depends(get_clock)],
    x_user_id: str = Header(..., description="Authenticated caller ID"),
) -> ActorContext:
    """Extract the caller identity forwarded by the gateway."""
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise ValidationError("Invalid X-User-Id header", details={"value": x_user_id})
    return ActorContext(user_id=user_id, clock=clock)


Actor = Annotated[ActorContext, Depends(get_actor)]
ClockDep = Annotated[Clock, Depends(get_clock)]
