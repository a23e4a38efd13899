import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from authorization import AuthorizationGate
from database import DocumentStore
from errors import NetworkError, NotFoundError, ValidationError
from listing_cache import Delta
from schemas import Product, ProductFields, ProductPatch, parse_fields, to_document
from session import SessionCache
from uploads import BlobFile, UploadCoordinator

logger = logging.getLogger(__name__)

COLLECTION = "product"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogStore:
    """CRUD over products. Every mutation is admin-gated before touching the network."""

    def __init__(self, store: DocumentStore, gate: AuthorizationGate, session: SessionCache,
                 uploads: UploadCoordinator, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.gate = gate
        self.session = session
        self.uploads = uploads
        self.clock = clock

    async def list_products(self) -> List[Product]:
        docs = await self.store.get_documents(COLLECTION, {})
        return [Product(**d) for d in docs]

    async def get_product(self, product_id: str) -> Product:
        doc = await self.store.get_document(COLLECTION, product_id)
        if not doc:
            raise NotFoundError("Product not found")
        return Product(**doc)

    async def create_product(self, fields: dict, image_files: Sequence[BlobFile]) -> Delta:
        self.gate.require(self.session.current)
        data = parse_fields(ProductFields, fields)
        if not image_files:
            raise ValidationError("images: at least one image is required")

        images = await self.uploads.upload_all(image_files)
        now = self.clock()
        doc = to_document(data)
        doc.update({"images": images, "created_at": now, "updated_at": now})
        product_id = await self._write(self.store.create_document(COLLECTION, doc), images)
        logger.info("created product %s (%s) with %d images", product_id, data.name, len(images))
        return Delta.insert(COLLECTION, Product(id=product_id, **doc))

    async def update_product(self, product_id: str, fields: dict,
                             new_image_files: Optional[Sequence[BlobFile]] = None) -> Delta:
        self.gate.require(self.session.current)
        patch = parse_fields(ProductPatch, {k: v for k, v in fields.items() if v is not None})
        existing = await self.get_product(product_id)
        merged = existing.model_dump(include=set(ProductFields.model_fields))
        merged.update(patch.model_dump(exclude_unset=True))
        data = parse_fields(ProductFields, merged)

        new_images = await self.uploads.upload_all(list(new_image_files or []))
        changes = to_document(data)
        changes.update({"images": existing.images + new_images, "updated_at": self.clock()})
        found = await self._write(self.store.update_document(COLLECTION, product_id, changes), new_images)
        if not found:
            self.uploads.report_orphans(new_images, "product %s vanished" % product_id)
            raise NotFoundError("Product not found")
        logger.info("updated product %s (+%d images)", product_id, len(new_images))
        updated = Product(**{**existing.model_dump(), **data.model_dump(),
                             "images": changes["images"], "updated_at": changes["updated_at"]})
        return Delta.replace(COLLECTION, updated)

    async def delete_product(self, product_id: str) -> Delta:
        self.gate.require(self.session.current)
        if not await self.store.delete_document(COLLECTION, product_id):
            raise NotFoundError("Product not found")
        # orders keep their own product_name/amount snapshot
        logger.info("deleted product %s", product_id)
        return Delta.remove(COLLECTION, product_id)

    async def _write(self, pending, uploaded: List[str]):
        try:
            return await pending
        except NetworkError:
            self.uploads.report_orphans(uploaded, "record write failed")
            raise
