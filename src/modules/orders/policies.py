"""Authorization predicates over (actor, order).

Pure functions: no I/O, no exceptions.  Services call ``require`` to turn a
failed predicate into ``Unauthorized`` before touching any state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from modules.core.authentication import ActorRole
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import Unauthorized

if TYPE_CHECKING:
    from modules.core.authentication import Actor
    from modules.orders.models import Order


def can_create(actor: Actor) -> bool:
    return actor.role == ActorRole.BUYER


def can_read(actor: Actor, order: Order) -> bool:
    if actor.role == ActorRole.ADMIN:
        return True
    if actor.role == ActorRole.BUYER:
        return order.buyer_id == actor.id
    if actor.role == ActorRole.FARMER:
        return order.farmer_id == actor.id
    if actor.role == ActorRole.TRANSPORTER:
        return order.transporter_id == actor.id
    if actor.role == ActorRole.VENDOR:
        return order.vendor_id is not None and order.vendor_id == actor.id
    return False


def can_modify(actor: Actor, order: Order) -> bool:
    """Buyers only while their order is pending; farmers on their own
    orders; admins always."""
    if actor.role == ActorRole.ADMIN:
        return True
    if actor.role == ActorRole.FARMER:
        return order.farmer_id == actor.id
    if actor.role == ActorRole.BUYER:
        return order.buyer_id == actor.id and order.status == OrderStatus.PENDING
    return False


def can_assign_transporter(actor: Actor, order: Order) -> bool:
    return actor.role == ActorRole.FARMER and order.farmer_id == actor.id


def can_annotate(actor: Actor, order: Order) -> bool:
    """Who may record location updates on the tracking trail."""
    if actor.role == ActorRole.ADMIN:
        return True
    if actor.role == ActorRole.FARMER:
        return order.farmer_id == actor.id
    if actor.role == ActorRole.TRANSPORTER:
        return order.transporter_id is not None and order.transporter_id == actor.id
    return False


def require(allowed: bool, message: str | None = None) -> None:
    if not allowed:
        raise Unauthorized(message)
