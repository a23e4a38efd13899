"""
One client session over the storefront core.

Wires the session cache, the authorization gate, the catalog, the ledger and
the listing cache together. Every mutation goes through the core first and
only the resulting ``Delta`` touches the cached listings.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

from authorization import AuthorizationGate
from catalog import COLLECTION as PRODUCTS, CatalogStore, utcnow
from database import DocumentStore
from identity import ANONYMOUS, Identity, IdentityProvider
from ledger import COLLECTION as ORDERS, OrderLedger
from listing_cache import Delta, ListingCache
from schemas import Order, Product
from session import SessionCache
from uploads import BlobFile, UploadCoordinator

logger = logging.getLogger(__name__)


class Storefront:
    def __init__(self, store: DocumentStore, gate: AuthorizationGate, uploads: UploadCoordinator,
                 provider: Optional[IdentityProvider] = None, identity: Identity = ANONYMOUS, clock=utcnow):
        self.session = SessionCache(identity)
        self.provider = provider
        if provider is not None:
            self.session.attach(provider)
        self.gate = gate
        self.catalog = CatalogStore(store, gate, self.session, uploads, clock)
        self.ledger = OrderLedger(store, gate, self.session, uploads, self.catalog, clock)
        self.cache = ListingCache()

    @property
    def identity(self) -> Identity:
        return self.session.current

    @property
    def is_admin(self) -> bool:
        return self.gate.is_authorized(self.session.current)

    @property
    def products(self) -> List[Product]:
        return self.cache.get(PRODUCTS)

    @property
    def orders(self) -> List[Order]:
        return self.cache.get(ORDERS)

    def _apply(self, delta: Delta) -> Delta:
        self.cache.apply(delta)
        return delta

    # ---- full refreshes

    async def refresh_products(self) -> List[Product]:
        products = await self.catalog.list_products()
        products.sort(key=lambda p: p.created_at, reverse=True)
        self.cache.load(PRODUCTS, products)
        return products

    async def refresh_my_orders(self) -> List[Order]:
        orders = await self.ledger.list_orders_for_user(self.ledger.require_identity().uid)
        self.cache.load(ORDERS, orders)
        return orders

    async def sync_admin(self) -> None:
        """Load every product and every order for the admin console."""
        self.gate.require(self.session.current)
        logger.info("admin: synchronizing products and orders")
        products, orders = await asyncio.gather(self.catalog.list_products(), self.ledger.list_all_orders())
        products.sort(key=lambda p: p.created_at, reverse=True)
        self.cache.load(PRODUCTS, products)
        self.cache.load(ORDERS, orders)
        logger.info("admin: synced %d products, %d orders", len(products), len(orders))

    # ---- mutations

    async def create_product(self, fields: dict, image_files: Sequence[BlobFile]) -> Product:
        return self._apply(await self.catalog.create_product(fields, image_files)).record

    async def update_product(self, product_id: str, fields: dict, new_image_files: Sequence[BlobFile] = ()) -> Product:
        return self._apply(await self.catalog.update_product(product_id, fields, new_image_files)).record

    async def delete_product(self, product_id: str) -> None:
        self._apply(await self.catalog.delete_product(product_id))

    async def place_order(self, product_id: str, quantity: int, receiver_name: str, phone: str,
                          address: str, utr: str, screenshot_file: Optional[BlobFile]) -> Order:
        delta = await self.ledger.create_order(product_id, quantity, receiver_name, phone, address, utr, screenshot_file)
        return self._apply(delta).record

    async def update_order_status(self, order_id: str, status: str) -> Order:
        return self._apply(await self.ledger.update_status(order_id, status)).record

    async def delete_order(self, order_id: str) -> None:
        self._apply(await self.ledger.delete_order(order_id))

    def close(self) -> None:
        self.session.close()
        self.cache.clear()
