import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from bson import ObjectId

from addresses import AddressService
from auth import Identity, get_identity
from cart import CartService
from catalog import CatalogService
from database import db, ensure_indexes
from errors import ShopError
from gateway import DocumentGateway, MongoGateway
from log import get_logger
from reviews import ReviewService
from schemas import AddressIn, CartLineIn, ProductFilter, ProductReviewIn, WishlistItemIn
from wishlist import WishlistService

logger = get_logger(__name__)

_gateway = MongoGateway(db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        await ensure_indexes(db)
    else:
        logger.warning("DATABASE_URL not set, storage endpoints will fail")
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


# Utilities

def serialize_doc(value: Any) -> Any:
    """Make a stored document JSON friendly: `_id` becomes `id`, ObjectIds become strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize_doc(v) for v in value]
    if isinstance(value, dict):
        doc = {}
        for k, v in value.items():
            doc["id" if k == "_id" else k] = serialize_doc(v)
        return doc
    return value


# Dependencies

def get_gateway() -> DocumentGateway:
    return _gateway


def get_catalog(gateway: DocumentGateway = Depends(get_gateway)) -> CatalogService:
    return CatalogService(gateway)


def get_addresses(gateway: DocumentGateway = Depends(get_gateway)) -> AddressService:
    return AddressService(gateway)


def get_carts(gateway: DocumentGateway = Depends(get_gateway)) -> CartService:
    return CartService(gateway)


def get_wishlists(gateway: DocumentGateway = Depends(get_gateway)) -> WishlistService:
    return WishlistService(gateway)


def get_reviews(gateway: DocumentGateway = Depends(get_gateway)) -> ReviewService:
    return ReviewService(gateway)


# Routes
@app.get("/")
def read_root():
    return {"message": "Storefront API"}


@app.get("/test")
async def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["collections"] = await db.list_collection_names()
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Addresses
@app.get("/addresses")
async def list_addresses(
    identity: Optional[Identity] = Depends(get_identity),
    service: AddressService = Depends(get_addresses),
):
    return serialize_doc(await service.list_addresses(identity))


@app.post("/addresses", status_code=201)
async def add_address(
    address: AddressIn,
    identity: Optional[Identity] = Depends(get_identity),
    service: AddressService = Depends(get_addresses),
):
    return serialize_doc(await service.add_address(identity, address))


# Catalog
@app.post("/products/search")
async def search_products(
    filter: Optional[ProductFilter] = None,
    service: CatalogService = Depends(get_catalog),
):
    return serialize_doc(await service.list_products(filter))


@app.get("/products/{product_id}")
async def get_product(product_id: str, service: CatalogService = Depends(get_catalog)):
    return serialize_doc(await service.get_product(product_id))


@app.get("/categories")
async def list_categories(service: CatalogService = Depends(get_catalog)):
    return serialize_doc(await service.list_categories())


@app.get("/banners")
async def list_banners(service: CatalogService = Depends(get_catalog)):
    return serialize_doc(await service.list_banners())


@app.get("/lookups")
async def list_lookups(service: CatalogService = Depends(get_catalog)):
    return serialize_doc(await service.list_lookups())


# Cart
@app.get("/cart")
async def get_cart(
    identity: Optional[Identity] = Depends(get_identity),
    service: CartService = Depends(get_carts),
):
    return serialize_doc(await service.get_cart(identity))


@app.post("/cart")
async def add_to_cart(
    item: CartLineIn,
    identity: Optional[Identity] = Depends(get_identity),
    service: CartService = Depends(get_carts),
):
    return serialize_doc(await service.add_product(identity, item.product_id, item.quantity))


@app.delete("/cart/{product_id}")
async def remove_from_cart(
    product_id: str,
    identity: Optional[Identity] = Depends(get_identity),
    service: CartService = Depends(get_carts),
):
    return serialize_doc(await service.remove_product(identity, product_id))


# Wishlist
@app.get("/wishlist")
async def get_wishlist(
    identity: Optional[Identity] = Depends(get_identity),
    service: WishlistService = Depends(get_wishlists),
):
    return serialize_doc(await service.get_wishlist(identity))


@app.post("/wishlist")
async def add_to_wishlist(
    item: WishlistItemIn,
    identity: Optional[Identity] = Depends(get_identity),
    service: WishlistService = Depends(get_wishlists),
):
    return serialize_doc(await service.add_product(identity, item.product_id))


@app.delete("/wishlist/{product_id}")
async def remove_from_wishlist(
    product_id: str,
    identity: Optional[Identity] = Depends(get_identity),
    service: WishlistService = Depends(get_wishlists),
):
    return serialize_doc(await service.remove_product(identity, product_id))


# Reviews
@app.post("/reviews")
async def add_review(
    review: ProductReviewIn,
    identity: Optional[Identity] = Depends(get_identity),
    service: ReviewService = Depends(get_reviews),
):
    return serialize_doc(await service.add_review(identity, review))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
