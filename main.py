import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from database import create_document, ensure_indexes, get_db
from errors import StoreError
from inventory import generate_sku
from routers import admin, auth, cart, contact, lookbook, orders, products, reviews, settings, upload, users
from schemas import Product, User
from security import hash_password
from settings_store import SettingsStore

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def ensure_admin(db: Database) -> None:
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not (email and password):
        return
    if db["user"].find_one({"email": email.lower()}):
        return
    admin_user = User(
        first_name="BRELIS",
        last_name="Admin",
        email=email.lower(),
        password_hash=hash_password(password),
        role="admin",
        email_verified=True,
    )
    create_document(db, "user", admin_user)
    logger.info("Created admin account %s", email.lower())


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.settings_store = SettingsStore()
    if database.db is not None:
        ensure_indexes(database.db)
        ensure_admin(database.db)
    else:
        logger.warning("DATABASE_URL not set, API will answer 503 on data routes")
    yield


app = FastAPI(title="BRELIS Streetwear API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]) or str(err["loc"][0]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"success": False, "message": "Validation failed", "errors": errors})


for module in (auth, products, cart, orders, users, admin, reviews, lookbook, settings, upload, contact):
    app.include_router(module.router, prefix="/api")


@app.get("/")
def read_root():
    return {"brand": "BRELIS", "message": "BRELIS Streetwear API is running"}


@app.get("/health")
def health():
    return {"success": True, "status": "ok", "database": database.db is not None}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
            response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.exception("Database check failed")
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


# -------------------------------
# Seed
# -------------------------------

class SeedRequest(BaseModel):
    with_demo: bool = True


def _sizes(price: float, stock: dict, colors: Optional[list] = None):
    return [{"size": s, "stock": n, "price": price, "colors": colors or ["black"]} for s, n in stock.items()]


DEMO_PRODUCTS = [
    Product(
        name="Shadow Oversized Hoodie",
        description="Heavyweight brushed fleece hoodie with dropped shoulders and tonal BRELIS embroidery.",
        category="hoodies",
        images=[{"url": "https://images.unsplash.com/photo-1556821840-3a63f95609a7?q=80&w=1600&auto=format&fit=crop", "alt": "Shadow Oversized Hoodie", "is_primary": True}],
        sizes=_sizes(2499, {"S": 15, "M": 20, "L": 20, "XL": 10}, ["black", "charcoal"]),
        base_price=2999,
        sale_price=2499,
        fabric="100% cotton fleece",
        gsm="420",
        fit="oversized",
        tags=["hoodie", "oversized", "essentials"],
        is_featured=True,
    ),
    Product(
        name="Concrete Graphic Tee",
        description="Boxy 240gsm tee with a back print inspired by city concrete.",
        category="tshirts",
        images=[{"url": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?q=80&w=1600&auto=format&fit=crop", "alt": "Concrete Graphic Tee", "is_primary": True}],
        sizes=_sizes(1199, {"S": 25, "M": 30, "L": 30, "XL": 15}, ["white", "black"]),
        base_price=1199,
        fabric="100% combed cotton",
        gsm="240",
        fit="oversized",
        tags=["tee", "graphic"],
        is_featured=True,
    ),
    Product(
        name="Utility Cargo Pants",
        description="Relaxed cargo pants with six pockets and an adjustable hem.",
        category="pants",
        images=[{"url": "https://images.unsplash.com/photo-1624378439575-d8705ad7ae80?q=80&w=1600&auto=format&fit=crop", "alt": "Utility Cargo Pants", "is_primary": True}],
        sizes=_sizes(2299, {"S": 10, "M": 12, "L": 12, "XL": 8}, ["olive", "black"]),
        base_price=2299,
        fabric="Cotton twill",
        fit="relaxed",
        tags=["cargo", "utility"],
    ),
    Product(
        name="Nightline Coach Jacket",
        description="Water-resistant coach jacket with snap front and reflective back hit.",
        category="jackets",
        images=[{"url": "https://images.unsplash.com/photo-1551028719-00167b16eac5?q=80&w=1600&auto=format&fit=crop", "alt": "Nightline Coach Jacket", "is_primary": True}],
        sizes=_sizes(3499, {"M": 8, "L": 8, "XL": 5}),
        base_price=3999,
        sale_price=3499,
        fabric="Nylon shell",
        fit="regular",
        tags=["jacket", "outerwear"],
    ),
]


@app.post("/api/seed")
def seed_products(_: Optional[SeedRequest] = None, db: Database = Depends(get_db)):
    count = db["product"].count_documents({})
    if count > 0:
        return {"success": True, "message": "Already seeded", "data": {"count": count}}

    ids = []
    for p in DEMO_PRODUCTS:
        doc = p.model_dump()
        doc["sku"] = generate_sku(p.category, p.name)
        ids.append(create_document(db, "product", doc))
    logger.info("Seeded %d demo products", len(ids))

    return {"success": True, "message": "Seeded", "data": {"count": len(ids), "ids": ids}}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
