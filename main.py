import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr

from authorization import AuthorizationGate
from database import DocumentStore, MemoryDocumentStore, MongoDocumentStore
from errors import AuthenticationError, StorefrontError
from identity import ANONYMOUS, Authenticated, Identity, IdentityProvider, SignedIn
from schemas import Order, OrderStatus, Product
from settings import Settings, load_settings
from storefront import Storefront
from uploads import BlobFile, BlobService, CloudinaryBlobService, MemoryBlobService, UploadCoordinator

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    name: str = ""
    email: EmailStr
    password: str


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class StatusBody(BaseModel):
    status: OrderStatus


def session_payload(signed: SignedIn, gate: AuthorizationGate) -> dict:
    return {"token": signed.token, "user": profile(signed.identity, gate)}


def profile(identity: Authenticated, gate: AuthorizationGate) -> dict:
    return {
        "uid": identity.uid,
        "email": identity.email,
        "display_name": identity.display_name,
        "is_admin": gate.is_authorized(identity),
    }


async def to_blob(upload: UploadFile) -> BlobFile:
    return BlobFile(
        filename=upload.filename or "upload",
        content=await upload.read(),
        content_type=upload.content_type or "application/octet-stream",
    )


async def to_blobs(uploads: Optional[List[UploadFile]]) -> List[BlobFile]:
    blobs = [await to_blob(u) for u in uploads or []]
    return [b for b in blobs if b.content]


def build_store(settings: Settings) -> DocumentStore:
    if settings.database_url and settings.database_name:
        return MongoDocumentStore(settings.database_url, settings.database_name)
    logger.warning("DATABASE_URL/DATABASE_NAME not set, using in-memory document store")
    return MemoryDocumentStore()


def build_blob_service(settings: Settings) -> BlobService:
    if settings.upload_cloud_name and settings.upload_preset:
        return CloudinaryBlobService(settings.upload_cloud_name, settings.upload_preset, settings.upload_timeout)
    logger.warning("UPLOAD_CLOUD_NAME/UPLOAD_PRESET not set, keeping uploads in memory")
    return MemoryBlobService()


def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None,
               blobs: Optional[BlobService] = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logging.getLogger().setLevel(settings.log_level)
    store = store or build_store(settings)
    gate = AuthorizationGate(settings.admin_email)
    uploads = UploadCoordinator(blobs or build_blob_service(settings))
    provider = IdentityProvider(store, settings.jwt_secret, settings.jwt_algo, settings.jwt_ttl_days)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await store.close()

    app = FastAPI(title="Storefront Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.gate = gate
    app.state.provider = provider

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # ----------------------- Session -----------------------
    async def get_identity(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Identity:
        if credentials is None:
            return ANONYMOUS
        return await provider.resolve_token(credentials.credentials)

    async def get_current_user(identity: Identity = Depends(get_identity)) -> Authenticated:
        if not isinstance(identity, Authenticated):
            raise AuthenticationError("Not authenticated")
        return identity

    def get_storefront(identity: Identity = Depends(get_identity)):
        storefront = Storefront(store, gate, uploads, identity=identity)
        try:
            yield storefront
        finally:
            storefront.close()

    # ----------------------- Health -----------------------
    @app.get("/")
    def root():
        return {"message": "Storefront API running"}

    @app.get("/test")
    async def test_database():
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
            "store": store.name,
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            response["collections"] = (await store.list_collection_names())[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except StorefrontError as e:
            response["database"] = f"❌ Error: {e.message[:80]}"
        return response

    # ----------------------- Auth -----------------------
    @app.post("/auth/signup")
    async def signup(body: SignupBody):
        signed = await provider.sign_up(body.email, body.password, body.name)
        return session_payload(signed, gate)

    @app.post("/auth/login")
    async def login(body: LoginBody):
        signed = await provider.sign_in(body.email, body.password)
        return session_payload(signed, gate)

    @app.post("/auth/refresh")
    async def refresh(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
        if credentials is None:
            raise AuthenticationError("Not authenticated")
        signed = await provider.refresh(credentials.credentials)
        return session_payload(signed, gate)

    @app.get("/auth/me")
    def me(user: Authenticated = Depends(get_current_user)):
        return profile(user, gate)

    # ----------------------- Products -----------------------
    @app.get("/products", response_model=List[Product])
    async def list_products(storefront: Storefront = Depends(get_storefront)):
        return await storefront.refresh_products()

    @app.get("/products/{product_id}", response_model=Product)
    async def get_product(product_id: str, storefront: Storefront = Depends(get_storefront)):
        return await storefront.catalog.get_product(product_id)

    @app.post("/products", response_model=Product)
    async def create_product(
        name: Optional[str] = Form(None),
        price: Optional[str] = Form(None),
        description: str = Form(""),
        tags: str = Form(""),
        qr_code_url: Optional[str] = Form(None),
        images: List[UploadFile] = File(default=[]),
        storefront: Storefront = Depends(get_storefront),
    ):
        fields = {"name": name, "price": price, "description": description, "tags": tags, "qr_code_url": qr_code_url}
        storefront.gate.require(storefront.identity)
        return await storefront.create_product(fields, await to_blobs(images))

    @app.put("/products/{product_id}", response_model=Product)
    async def update_product(
        product_id: str,
        name: Optional[str] = Form(None),
        price: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        tags: Optional[str] = Form(None),
        qr_code_url: Optional[str] = Form(None),
        images: List[UploadFile] = File(default=[]),
        storefront: Storefront = Depends(get_storefront),
    ):
        fields = {"name": name, "price": price, "description": description, "tags": tags, "qr_code_url": qr_code_url}
        storefront.gate.require(storefront.identity)
        return await storefront.update_product(product_id, fields, await to_blobs(images))

    @app.delete("/products/{product_id}")
    async def delete_product(product_id: str, storefront: Storefront = Depends(get_storefront)):
        await storefront.delete_product(product_id)
        return {"ok": True}

    # ----------------------- Orders -----------------------
    @app.post("/orders", response_model=Order)
    async def create_order(
        product_id: str = Form(...),
        quantity: int = Form(1),
        receiver_name: str = Form(""),
        phone: str = Form(""),
        address: str = Form(""),
        utr: str = Form(""),
        screenshot: Optional[UploadFile] = File(None),
        storefront: Storefront = Depends(get_storefront),
    ):
        storefront.ledger.require_identity()
        proof = await to_blob(screenshot) if screenshot is not None else None
        return await storefront.place_order(product_id, quantity, receiver_name, phone, address, utr, proof)

    @app.get("/orders", response_model=List[Order])
    async def my_orders(storefront: Storefront = Depends(get_storefront)):
        return await storefront.refresh_my_orders()

    @app.get("/orders/{order_id}", response_model=Order)
    async def get_order(order_id: str, storefront: Storefront = Depends(get_storefront)):
        return await storefront.ledger.get_order(order_id)

    # ----------------------- Admin -----------------------
    @app.get("/admin/orders", response_model=List[Order])
    async def all_orders(storefront: Storefront = Depends(get_storefront)):
        return await storefront.ledger.list_all_orders()

    @app.patch("/admin/orders/{order_id}", response_model=Order)
    async def update_order_status(order_id: str, body: StatusBody, storefront: Storefront = Depends(get_storefront)):
        return await storefront.update_order_status(order_id, body.status)

    @app.delete("/admin/orders/{order_id}")
    async def delete_order(order_id: str, storefront: Storefront = Depends(get_storefront)):
        await storefront.delete_order(order_id)
        return {"ok": True}

    @app.get("/admin/stats")
    async def admin_stats(storefront: Storefront = Depends(get_storefront)):
        await storefront.sync_admin()
        orders = storefront.orders
        return {
            "users": await store.count_documents("user"),
            "products": len(storefront.products),
            "orders": len(orders),
            "pending": sum(1 for o in orders if o.status == "pending"),
        }

    return app


if __name__ == "__main__":
    import uvicorn

    # equivalent to: uvicorn main:create_app --factory
    uvicorn.run(create_app(), host="0.0.0.0", port=load_settings().port)
