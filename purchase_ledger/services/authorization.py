"""
Ownership-scoped authorization.

Admins and managers see every purchase. Employees see only the
purchases they own (Purchase.user_id == actor.id). The filter
is expressed as a SQL predicate and added to the WHERE clause
of every purchase query, so rows the caller may not see never
leave the database.

An employee who asks for a purchase outside their scope gets
ForbiddenError whether or not the row exists.
"""

from dataclasses import dataclass

from sqlalchemy import ColumnElement, Select, true

from purchase_ledger.exceptions import ForbiddenError
from purchase_ledger.models.enums import Role
from purchase_ledger.models.purchase import Purchase


UNRESTRICTED_ROLES = frozenset({Role.ADMIN, Role.MANAGER})


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as handed over by the auth layer."""
    id: int
    role: Role

    @property
    def is_unrestricted(self) -> bool:
        return self.role in UNRESTRICTED_ROLES


def purchase_scope(actor: Actor) -> ColumnElement[bool]:
    """Predicate selecting the purchases the actor may see or mutate."""
    if actor.is_unrestricted:
        return true()
    return Purchase.user_id == actor.id


def scope_purchases(query: Select, actor: Actor) -> Select:
    """Narrow a query that selects from purchases to the actor's rows."""
    return query.where(purchase_scope(actor))


def resolve_owner(actor: Actor, requested_user_id: int | None) -> int | None:
    """
    Decide the owner of a new purchase.

    Employees always own what they create, whatever the request
    body says. Admins and managers may attribute a purchase to
    any user, and default to themselves.
    """
    if not actor.is_unrestricted:
        return actor.id
    return requested_user_id if requested_user_id is not None else actor.id


def require_role(actor: Actor, *roles: Role) -> None:
    """Raise ForbiddenError unless the actor holds one of ``roles``."""
    if actor.role not in roles:
        raise ForbiddenError()
