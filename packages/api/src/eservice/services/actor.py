# This project was developed with assistance from AI tools.
"""Who is driving a transition: a person with a role, or the system itself."""

from dataclasses import dataclass

from db.enums import UserRole


@dataclass(frozen=True)
class HumanActor:
    user_id: str
    role: UserRole


@dataclass(frozen=True)
class SystemActor:
    """Automatic actor used by the overdue sweep. Has no id and no role."""

    pass


SYSTEM = SystemActor()

Actor = HumanActor | SystemActor


def actor_id(actor: Actor) -> str | None:
    """User id recorded in the flow log; None marks a system move."""
    if isinstance(actor, HumanActor):
        return actor.user_id
    return None


def actor_role(actor: Actor) -> UserRole | None:
    if isinstance(actor, HumanActor):
        return actor.role
    return None
