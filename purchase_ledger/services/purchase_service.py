"""
Purchase service: the transactional write pipeline.

Every mutation of a purchase or its items goes through this
service. Each public write method:

1. Validates its arguments (quantities, request id) before
   touching the database.
2. Opens a unit of work, loads the purchase with the caller's
   ownership scope applied and a row lock held, and re-checks
   the closed flag under that lock.
3. Mutates, refreshes the derived totals and takes the audit
   snapshots (old before the write, new after the flush).
4. Commits. Any error rolls the whole unit back.
5. Only after a successful commit, hands one audit event to
   the dispatcher.

The service owns the transaction boundary. Callers never
commit or roll back on its behalf.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from purchase_ledger.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from purchase_ledger.models.employee import Employee
from purchase_ledger.models.enums import AuditAction, PurchaseState, Role
from purchase_ledger.models.product import Product
from purchase_ledger.models.purchase import Purchase
from purchase_ledger.models.purchase_item import PurchaseItem
from purchase_ledger.models.user import User
from purchase_ledger.schemas.common import Pagination, PageMeta
from purchase_ledger.schemas.purchase import (
    PurchaseCreate,
    PurchaseFilters,
    PurchaseItemInput,
)
from purchase_ledger.services.audit_service import (
    AuditDispatcher,
    AuditEvent,
    get_audit_dispatcher,
    validate_request_id,
)
from purchase_ledger.services.authorization import (
    Actor,
    require_role,
    resolve_owner,
    scope_purchases,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# All purchase and item mutations are recorded against the purchase,
# so consecutive records for one purchase form an unbroken chain.
AUDIT_RESOURCE = "purchase"


def validate_quantity(quantity, field: str = "quantity") -> int:
    """Quantity must be a real integer (not a bool) of at least 1."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer", field=field)
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", field=field)
    return quantity


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return (Decimal(unit_price) * quantity).quantize(CENT)


class PurchaseService:

    def __init__(self, db: Session, audit: AuditDispatcher | None = None):
        self.db = db
        self.audit = audit or get_audit_dispatcher()

    # --- Unit of work -------------------------------------------------

    @contextmanager
    def _unit_of_work(self):
        """
        Commit on success, roll back on any error.

        Storage constraint violations are re-raised as domain
        errors so callers never see a raw driver exception.
        """
        try:
            yield
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._translate_integrity_error(e) from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _translate_integrity_error(error: IntegrityError):
        message = str(error.orig).lower()
        if "unique" in message or "duplicate" in message:
            return ConflictError("Record already exists")
        if "foreign key" in message:
            # References are resolved up front; this is a concurrent delete
            return ConflictError(
                "Referenced employee, product or user no longer exists"
            )
        if "check" in message:
            return ValidationError("Value violates a data constraint")
        return ConflictError("Data integrity violation")

    def _record(
        self,
        action: AuditAction,
        purchase_id: int,
        actor: Actor,
        request_id: str,
        old_value: dict | None = None,
        new_value: dict | None = None,
    ) -> None:
        self.audit.dispatch(AuditEvent(
            action=action,
            resource=AUDIT_RESOURCE,
            resource_id=purchase_id,
            user_id=actor.id,
            request_id=request_id,
            old_value=old_value,
            new_value=new_value,
        ))

    # --- Loading ------------------------------------------------------

    def _load_purchase(
        self, purchase_id: int, actor: Actor, lock: bool = False
    ) -> Purchase:
        """
        Load a purchase and its items through the ownership scope.

        With lock=True the row is read with SELECT ... FOR UPDATE
        and fresh column values overwrite anything already in the
        session, so the closed flag checked afterwards is the one
        the database holds right now.
        """
        query = scope_purchases(
            select(Purchase).where(Purchase.id == purchase_id), actor
        ).options(selectinload(Purchase.items))
        if lock:
            query = query.with_for_update().execution_options(
                populate_existing=True
            )

        purchase = self.db.execute(query).scalar_one_or_none()
        if purchase is None:
            # Employees get the same answer for "not yours" and "missing"
            if not actor.is_unrestricted:
                raise ForbiddenError()
            raise NotFoundError("Purchase", purchase_id)
        return purchase

    def _fetch_with_items(self, purchase_id: int) -> Purchase:
        """Unscoped reload after commit, for returning results."""
        return self.db.execute(
            select(Purchase)
            .where(Purchase.id == purchase_id)
            .options(selectinload(Purchase.items))
            .execution_options(populate_existing=True)
        ).scalar_one()

    def _load_item_for_update(
        self, item_id: int, actor: Actor
    ) -> tuple[Purchase, PurchaseItem]:
        """Lock the parent purchase, then find the item inside it."""
        purchase_id = self.db.execute(
            select(PurchaseItem.purchase_id).where(PurchaseItem.id == item_id)
        ).scalar_one_or_none()
        if purchase_id is None:
            if not actor.is_unrestricted:
                raise ForbiddenError()
            raise NotFoundError("PurchaseItem", item_id)

        purchase = self._load_purchase(purchase_id, actor, lock=True)
        item = next((i for i in purchase.items if i.id == item_id), None)
        if item is None:
            # Removed by a concurrent request after the first lookup
            raise NotFoundError("PurchaseItem", item_id)
        return purchase, item

    def _products_by_id(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """Resolve every product up front; fail before anything is written."""
        wanted = set(product_ids)
        if not wanted:
            return {}
        products = self.db.execute(
            select(Product).where(Product.id.in_(wanted))
        ).scalars().all()
        found = {p.id: p for p in products}

        missing = sorted(wanted - set(found))
        if missing:
            raise NotFoundError("Product", missing[0])
        return found

    # --- State machine helpers ----------------------------------------

    @staticmethod
    def _ensure_open(purchase: Purchase) -> None:
        if purchase.closed:
            raise InvalidStateError(
                "Cannot modify closed purchase",
                {"purchase_id": purchase.id},
            )

    @staticmethod
    def _refresh_total(purchase: Purchase) -> None:
        """total is always the sum of the line totals."""
        purchase.total = sum(
            (item.total_price for item in purchase.items), ZERO
        ).quantize(CENT)

    @staticmethod
    def _build_items(
        items: list[PurchaseItemInput], products: dict[int, Product]
    ) -> list[PurchaseItem]:
        built = []
        for item in items:
            price = products[item.product_id].price
            built.append(PurchaseItem(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=price,
                total_price=line_total(price, item.quantity),
            ))
        return built

    @staticmethod
    def _validate_items(items: list[PurchaseItemInput]) -> None:
        for index, item in enumerate(items):
            validate_quantity(item.quantity, field=f"items[{index}].quantity")

    def _transition(
        self,
        purchase_id: int,
        target: PurchaseState,
        actor: Actor,
        request_id: str,
    ) -> Purchase:
        """
        Flip the closed flag with a conditional UPDATE.

        The WHERE clause names the expected prior state, so if
        two requests race only one of them matches a row. The
        loser sees zero rows updated and gets InvalidStateError
        instead of silently repeating the transition.
        """
        closing = target == PurchaseState.CLOSED

        with self._unit_of_work():
            purchase = self._load_purchase(purchase_id, actor, lock=True)
            if not purchase.can_transition_to(target):
                raise InvalidStateError(
                    "Purchase is already closed" if closing
                    else "Purchase is not closed",
                    {"purchase_id": purchase_id},
                )
            old_value = purchase.snapshot()

            result = self.db.execute(
                update(Purchase)
                .where(Purchase.id == purchase_id, Purchase.closed.is_(not closing))
                .values(closed=closing)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateError(
                    "Purchase is already closed" if closing
                    else "Purchase is not closed",
                    {"purchase_id": purchase_id},
                )
            new_value = {**old_value, "closed": closing}

        self._record(
            AuditAction.UPDATE, purchase_id, actor, request_id,
            old_value=old_value, new_value=new_value,
        )
        logger.info(
            "Purchase %s %s by user %s (request %s)",
            purchase_id, "closed" if closing else "reopened",
            actor.id, request_id,
        )
        return self._fetch_with_items(purchase_id)

    # --- Write operations ---------------------------------------------

    def create_purchase(
        self, request: PurchaseCreate, actor: Actor, request_id: str
    ) -> Purchase:
        """
        Create a purchase and its initial items atomically.

        Every product is resolved before the first insert. If any
        of them is missing, nothing is written: no purchase row
        survives without the items it was created with. Any total
        in the request is ignored and recomputed from the items.
        """
        validate_request_id(request_id)
        if request.date is None:
            raise ValidationError("date is required", field="date")
        self._validate_items(request.items)

        with self._unit_of_work():
            employee = self.db.get(Employee, request.employee_id)
            if employee is None or employee.is_deleted:
                raise NotFoundError("Employee", request.employee_id)

            owner_id = resolve_owner(actor, request.user_id)
            if owner_id != actor.id and self.db.get(User, owner_id) is None:
                raise NotFoundError("User", owner_id)

            products = self._products_by_id(i.product_id for i in request.items)

            purchase = Purchase(
                employee_id=employee.id,
                user_id=owner_id,
                date=request.date,
                closed=False,
                items=self._build_items(request.items, products),
            )
            self._refresh_total(purchase)
            self.db.add(purchase)
            self.db.flush()
            new_value = purchase.snapshot()
            purchase_id = purchase.id

        self._record(
            AuditAction.CREATE, purchase_id, actor, request_id,
            new_value=new_value,
        )
        logger.info(
            "Purchase %s created for employee %s with %d item(s), total %s "
            "(request %s)",
            purchase_id, request.employee_id, len(request.items),
            new_value["total"], request_id,
        )
        return self._fetch_with_items(purchase_id)

    def add_items(
        self,
        purchase_id: int,
        items: list[PurchaseItemInput],
        actor: Actor,
        request_id: str,
    ) -> Purchase:
        """Append items to an open purchase and refresh its total."""
        validate_request_id(request_id)
        if not items:
            raise ValidationError("At least one item is required", field="items")
        self._validate_items(items)

        with self._unit_of_work():
            purchase = self._load_purchase(purchase_id, actor, lock=True)
            self._ensure_open(purchase)
            old_value = purchase.snapshot()

            products = self._products_by_id(i.product_id for i in items)
            purchase.items.extend(self._build_items(items, products))
            self._refresh_total(purchase)
            self.db.flush()
            new_value = purchase.snapshot()

        self._record(
            AuditAction.UPDATE, purchase_id, actor, request_id,
            old_value=old_value, new_value=new_value,
        )
        logger.info(
            "Added %d item(s) to purchase %s, total %s -> %s (request %s)",
            len(items), purchase_id, old_value["total"], new_value["total"],
            request_id,
        )
        return self._fetch_with_items(purchase_id)

    def update_item(
        self, item_id: int, quantity: int, actor: Actor, request_id: str
    ) -> PurchaseItem:
        """
        Change the quantity of one item.

        The unit price stays the one captured when the item was
        added; only the line total and the purchase total move.
        """
        validate_request_id(request_id)
        validate_quantity(quantity)

        with self._unit_of_work():
            purchase, item = self._load_item_for_update(item_id, actor)
            self._ensure_open(purchase)
            old_value = purchase.snapshot()

            item.quantity = quantity
            item.total_price = line_total(item.unit_price, quantity)
            self._refresh_total(purchase)
            self.db.flush()
            new_value = purchase.snapshot()
            purchase_id = purchase.id

        self._record(
            AuditAction.UPDATE, purchase_id, actor, request_id,
            old_value=old_value, new_value=new_value,
        )
        logger.info(
            "Purchase item %s quantity set to %d (purchase %s, request %s)",
            item_id, quantity, purchase_id, request_id,
        )
        return self.db.get(PurchaseItem, item_id)

    def remove_item(self, item_id: int, actor: Actor, request_id: str) -> dict:
        """
        Delete one item. Removing the last item leaves an empty
        purchase with a zero total; the purchase itself stays.
        """
        validate_request_id(request_id)

        with self._unit_of_work():
            purchase, item = self._load_item_for_update(item_id, actor)
            self._ensure_open(purchase)
            old_value = purchase.snapshot()

            # delete-orphan cascade removes the row on flush
            purchase.items.remove(item)
            self._refresh_total(purchase)
            self.db.flush()
            new_value = purchase.snapshot()
            purchase_id = purchase.id

        self._record(
            AuditAction.UPDATE, purchase_id, actor, request_id,
            old_value=old_value, new_value=new_value,
        )
        logger.info(
            "Purchase item %s removed from purchase %s (request %s)",
            item_id, purchase_id, request_id,
        )
        return {"deleted": True, "id": item_id}

    def close_purchase(
        self, purchase_id: int, actor: Actor, request_id: str
    ) -> Purchase:
        """
        Close an open purchase.

        Not idempotent: closing a closed purchase is an error,
        which keeps duplicate audit records out of the trail.
        """
        validate_request_id(request_id)
        return self._transition(
            purchase_id, PurchaseState.CLOSED, actor, request_id
        )

    def reopen_purchase(
        self, purchase_id: int, actor: Actor, request_id: str
    ) -> Purchase:
        """Admin-only CLOSED -> OPEN, audited like any update."""
        validate_request_id(request_id)
        require_role(actor, Role.ADMIN)
        return self._transition(
            purchase_id, PurchaseState.OPEN, actor, request_id
        )

    def recalculate_total(
        self, purchase_id: int, actor: Actor, request_id: str
    ) -> Purchase:
        """
        Repair the line totals and the purchase total from the
        stored quantities and unit prices.

        Allowed on closed purchases, since it only restores the
        derived fields. Writes an audit record only when
        something actually changed.
        """
        validate_request_id(request_id)
        require_role(actor, Role.ADMIN, Role.MANAGER)

        with self._unit_of_work():
            purchase = self._load_purchase(purchase_id, actor, lock=True)
            old_value = purchase.snapshot()

            for item in purchase.items:
                item.total_price = line_total(item.unit_price, item.quantity)
            self._refresh_total(purchase)
            self.db.flush()
            new_value = purchase.snapshot()

        if new_value != old_value:
            self._record(
                AuditAction.UPDATE, purchase_id, actor, request_id,
                old_value=old_value, new_value=new_value,
            )
            logger.warning(
                "Purchase %s total repaired: %s -> %s (request %s)",
                purchase_id, old_value["total"], new_value["total"], request_id,
            )
        return self._fetch_with_items(purchase_id)

    def delete_purchase(
        self, purchase_id: int, actor: Actor, request_id: str
    ) -> dict:
        """Delete a purchase and its items. Admins and managers only."""
        validate_request_id(request_id)
        require_role(actor, Role.ADMIN, Role.MANAGER)

        with self._unit_of_work():
            purchase = self._load_purchase(purchase_id, actor, lock=True)
            old_value = purchase.snapshot()
            self.db.delete(purchase)
            self.db.flush()

        self._record(
            AuditAction.DELETE, purchase_id, actor, request_id,
            old_value=old_value,
        )
        logger.info(
            "Purchase %s deleted by user %s (request %s)",
            purchase_id, actor.id, request_id,
        )
        return {"deleted": True, "id": purchase_id}

    # --- Read operations ----------------------------------------------

    def get_purchase(self, purchase_id: int, actor: Actor) -> Purchase:
        """Get one purchase with its items, within the actor's scope."""
        return self._load_purchase(purchase_id, actor)

    def list_purchases(
        self,
        filters: PurchaseFilters,
        pagination: Pagination,
        actor: Actor,
    ) -> dict:
        """Page through the purchases the actor may see, newest first."""
        query = scope_purchases(select(Purchase), actor)
        if filters.employee_id is not None:
            query = query.where(Purchase.employee_id == filters.employee_id)
        if filters.closed is not None:
            query = query.where(Purchase.closed.is_(filters.closed))
        if filters.date_from is not None:
            query = query.where(Purchase.date >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(Purchase.date <= filters.date_to)

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()

        purchases = self.db.execute(
            query.order_by(Purchase.date.desc(), Purchase.id.desc())
            .limit(pagination.limit)
            .offset(pagination.offset)
        ).scalars().all()

        return {
            "data": list(purchases),
            "meta": PageMeta.build(pagination, total, len(purchases)),
        }

    def get_employee_purchase_summary(
        self,
        employee_id: int,
        actor: Actor,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> dict:
        """Counts and amounts for one employee's visible purchases."""
        query = scope_purchases(
            select(Purchase).where(Purchase.employee_id == employee_id), actor
        ).options(selectinload(Purchase.items))
        if date_from is not None:
            query = query.where(Purchase.date >= date_from)
        if date_to is not None:
            query = query.where(Purchase.date <= date_to)

        purchases = self.db.execute(
            query.order_by(Purchase.date.desc())
        ).scalars().all()

        return {
            "employee_id": employee_id,
            "total_purchases": len(purchases),
            "open_purchases": sum(1 for p in purchases if not p.closed),
            "closed_purchases": sum(1 for p in purchases if p.closed),
            "total_amount": sum((p.total for p in purchases), ZERO),
            "total_items": sum(
                item.quantity for p in purchases for item in p.items
            ),
        }

    def get_all_employee_summaries(
        self,
        actor: Actor,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[dict]:
        """Spending per employee in one GROUP BY. Admins and managers only."""
        require_role(actor, Role.ADMIN, Role.MANAGER)

        query = select(
            Purchase.employee_id,
            func.coalesce(func.sum(Purchase.total), 0).label("total_spending"),
            func.count(Purchase.id).label("purchase_count"),
        ).group_by(Purchase.employee_id).order_by(Purchase.employee_id)
        if date_from is not None:
            query = query.where(Purchase.date >= date_from)
        if date_to is not None:
            query = query.where(Purchase.date <= date_to)

        return [
            {
                "employee_id": row.employee_id,
                "total_spending": Decimal(str(row.total_spending)).quantize(CENT),
                "purchase_count": row.purchase_count,
            }
            for row in self.db.execute(query)
        ]
