"""
Order ledger.

Orders snapshot the product name and the amount at checkout time; neither is
ever recomputed from the live product, so price changes and product deletion
leave existing orders intact. Status only moves pending -> verified or
pending -> rejected, and both of those are terminal.
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from authorization import AuthorizationGate
from catalog import CatalogStore, utcnow
from database import DocumentStore
from errors import AuthenticationError, AuthorizationError, InvalidTransitionError, NetworkError, NotFoundError, ValidationError
from identity import DEFAULT_DISPLAY_NAME, Authenticated
from listing_cache import Delta
from schemas import PENDING, TERMINAL_STATUSES, CheckoutFields, Order, format_decimal, parse_fields, to_document
from session import SessionCache
from uploads import BlobFile, UploadCoordinator

logger = logging.getLogger(__name__)

COLLECTION = "order"

ALLOWED_TRANSITIONS = frozenset((PENDING, status) for status in TERMINAL_STATUSES)


def next_status(current: str, requested: str) -> str:
    """Return ``requested`` if moving there from ``current`` is allowed."""
    if (current, requested) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError("Cannot move order from %s to %s" % (current, requested))
    return requested


def newest_first(orders: Iterable[Order]) -> List[Order]:
    # sorted here so the store needs no compound (user_id, created_at) index
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


class OrderLedger:
    def __init__(self, store: DocumentStore, gate: AuthorizationGate, session: SessionCache,
                 uploads: UploadCoordinator, catalog: CatalogStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.gate = gate
        self.session = session
        self.uploads = uploads
        self.catalog = catalog
        self.clock = clock

    def require_identity(self) -> Authenticated:
        identity = self.session.current
        if not isinstance(identity, Authenticated):
            raise AuthenticationError("Sign in to continue")
        return identity

    async def create_order(self, product_id: str, quantity: int = 1, receiver_name: str = "",
                           phone: str = "", address: str = "", utr: str = "",
                           screenshot_file: Optional[BlobFile] = None) -> Delta:
        identity = self.require_identity()
        fields = parse_fields(CheckoutFields, {
            "product_id": product_id,
            "quantity": 1 if quantity is None else quantity,
            "receiver_name": receiver_name,
            "phone": phone,
            "address": address,
            "utr": utr,
        })
        if screenshot_file is None or not screenshot_file.content:
            raise ValidationError("screenshot: payment screenshot is required")

        product = await self.catalog.get_product(fields.product_id)
        amount = product.price * fields.quantity
        screenshot_url = await self.uploads.upload(screenshot_file)

        doc = to_document(fields)
        doc.update({
            "product_name": product.name,
            "amount": format_decimal(amount),
            "user_id": identity.uid,
            "user_name": identity.display_name or DEFAULT_DISPLAY_NAME,
            "user_email": identity.email,
            "screenshot_url": screenshot_url,
            "status": PENDING,
            "created_at": self.clock(),
        })
        try:
            order_id = await self.store.create_document(COLLECTION, doc)
        except NetworkError:
            self.uploads.report_orphans([screenshot_url], "order write failed")
            raise
        logger.info("order %s placed by %s for %s x%d = %s", order_id, identity.uid, product.name, fields.quantity, amount)
        return Delta.insert(COLLECTION, Order(id=order_id, **doc))

    async def get_order(self, order_id: str) -> Order:
        identity = self.require_identity()
        order = await self._load(order_id)
        if order.user_id != identity.uid and not self.gate.is_authorized(identity):
            raise AuthorizationError("Not allowed")
        return order

    async def update_status(self, order_id: str, new_status: str) -> Delta:
        self.gate.require(self.session.current)
        if new_status not in TERMINAL_STATUSES and new_status != PENDING:
            raise ValidationError("status: unknown order status %r" % new_status)
        order = await self._load(order_id)
        status = next_status(order.status, new_status)
        if not await self.store.update_document(COLLECTION, order_id, {"status": status}):
            raise NotFoundError("Order not found")
        logger.info("order %s moved %s -> %s", order_id, order.status, status)
        return Delta.replace(COLLECTION, order.model_copy(update={"status": status}))

    async def delete_order(self, order_id: str) -> Delta:
        self.gate.require(self.session.current)
        if not await self.store.delete_document(COLLECTION, order_id):
            raise NotFoundError("Order not found")
        logger.info("deleted order %s", order_id)
        return Delta.remove(COLLECTION, order_id)

    async def list_orders_for_user(self, user_id: str) -> List[Order]:
        identity = self.require_identity()
        if identity.uid != user_id and not self.gate.is_authorized(identity):
            raise AuthorizationError("Not allowed")
        docs = await self.store.get_documents(COLLECTION, {"user_id": user_id})
        return newest_first(Order(**d) for d in docs)

    async def list_all_orders(self) -> List[Order]:
        self.gate.require(self.session.current)
        docs = await self.store.get_documents(COLLECTION, {})
        return newest_first(Order(**d) for d in docs)

    async def _load(self, order_id: str) -> Order:
        doc = await self.store.get_document(COLLECTION, order_id)
        if not doc:
            raise NotFoundError("Order not found")
        return Order(**doc)
