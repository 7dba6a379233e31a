"""
Order visibility and assignment rules.

Who sees which orders:

- owners see every order;
- couriers (``livreur``) see the unclaimed pending orders plus the orders
  they already claimed;
- everyone else sees the orders they placed.

Who may change an order: only owners and couriers. Status changes follow the
transition table below, per role. A courier confirming an unclaimed order
claims it; the claim is a conditional write, so when two couriers race for
the same order exactly one wins and the other gets a ClaimConflict. Couriers
cannot otherwise touch an order nobody has claimed.
"""
import logging
from typing import Dict, FrozenSet, Optional, Union

from errors import ClaimConflict, InvalidAssignment, InvalidTransition, NotAuthorized, OrderNotFound
from schemas import Order, OrderCreate, OrderStatus, OrderUpdate, User
from storage import RecordList, Storage

logger = logging.getLogger(__name__)

OWNER = "owner"
COURIER = "livreur"
STAFF_ROLES = frozenset({OWNER, COURIER})

S = OrderStatus

OWNER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.PREPARING, S.DELIVERING, S.CANCELLED}),
    S.PREPARING: frozenset({S.READY, S.CANCELLED}),
    S.READY: frozenset({S.DELIVERING, S.DELIVERED, S.CANCELLED}),
    S.DELIVERING: frozenset({S.DELIVERED, S.CANCELLED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
}

COURIER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED}),
    S.CONFIRMED: frozenset({S.DELIVERING}),
    S.READY: frozenset({S.DELIVERING}),
    S.DELIVERING: frozenset({S.DELIVERED}),
}

TRANSITIONS = {OWNER: OWNER_TRANSITIONS, COURIER: COURIER_TRANSITIONS}


def allowed_next_statuses(role: str, current: Union[OrderStatus, str]) -> FrozenSet[OrderStatus]:
    table = TRANSITIONS.get(role, {})
    try:
        return table.get(OrderStatus(current), frozenset())
    except ValueError:
        # unknown stored status: nothing is reachable from it
        return frozenset()


def visible_orders(storage: Storage, actor: User) -> RecordList:
    if actor.role == OWNER:
        return storage.get_orders()

    if actor.role == COURIER:
        pending = storage.get_pending_orders()
        assigned = storage.get_orders_by_courier(actor.id)
        merged = {}
        for order in [*pending, *assigned]:
            merged[order.id] = order
        return RecordList(merged.values(), degraded=pending.degraded or assigned.degraded)

    return storage.get_orders_by_user(actor.id)


def place_order(storage: Storage, payload: OrderCreate, actor: Optional[User] = None) -> Order:
    data = payload.model_dump(by_alias=True)
    data["userId"] = actor.id if actor is not None else None
    order = storage.create_order(data)
    logger.info(f"Order {order.id} placed by {'user ' + str(actor.id) if actor else 'guest'}")
    return order


def update_order(storage: Storage, actor: User, order_id: str, update: OrderUpdate) -> Order:
    if actor.role not in STAFF_ROLES:
        raise NotAuthorized("Not authorized to update orders")

    order = storage.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)

    if actor.role == COURIER and order.livreur_id is not None and order.livreur_id != actor.id:
        raise NotAuthorized("Order is assigned to another courier")

    # an unclaimed order can only be claimed, by confirming it while pending
    if actor.role == COURIER and order.livreur_id is None:
        if order.status != S.PENDING or update.status != S.CONFIRMED:
            raise NotAuthorized("Claim the order before updating it")

    if "livreur_id" in update.model_fields_set:
        if actor.role != OWNER:
            raise NotAuthorized("Only owners can assign couriers")
        if update.livreur_id is not None:
            courier = storage.get_user(update.livreur_id)
            if courier is None or courier.role != COURIER or not courier.active:
                raise InvalidAssignment(f"User {update.livreur_id} is not an active courier")

    if update.status is not None:
        if update.status not in allowed_next_statuses(actor.role, order.status):
            current = order.status.value if isinstance(order.status, OrderStatus) else str(order.status)
            raise InvalidTransition(current, update.status.value)

        claiming = update.status == S.CONFIRMED and actor.role == COURIER and order.livreur_id is None
        if claiming:
            claimed = storage.claim_order(order_id, actor.id, update)
            if claimed is None:
                if storage.get_order(order_id) is None:
                    raise OrderNotFound(order_id)
                logger.info(f"Courier {actor.id} lost the claim on order {order_id}")
                raise ClaimConflict(order_id)
            logger.info(f"Order {order_id} claimed by courier {actor.id}")
            return claimed

    updated = storage.update_order(order_id, update)
    if updated is None:
        raise OrderNotFound(order_id)
    return updated
