import logging
import os

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import catalog
import database
import orders
import site_settings
import stats
import support
import wishlist
from database import create_document, ensure_indexes, get_db
from schemas import Category as CategorySchema, Product as ProductSchema, User as UserSchema

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Uni10 Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, catalog, orders, stats, site_settings, support, wishlist):
    app.include_router(module.router)


# ----------------------- Errors -----------------------
def validation_message(errors) -> str:
    if not errors:
        return "Invalid request"
    err = errors[0]
    msg = str(err.get("msg") or "Invalid request")
    if err.get("type") == "value_error":
        return msg.removeprefix("Value error, ")
    field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
    return f"{field}: {msg}" if field else msg


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"ok": False, "message": validation_message(exc.errors())})


@app.exception_handler(Exception)
async def server_error(request: Request, exc: Exception):
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"ok": False, "message": "Server error"})


@app.on_event("startup")
def on_startup():
    if database.db is not None:
        ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; data endpoints will fail")


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Uni10 storefront API running"}


@app.get("/test")
def test_database():
    db = database.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Seed Demo Data -----------------------
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@shop.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

DEMO_CATEGORIES = ["T-Shirts", "Hoodies", "Summer Wear!"]

DEMO_PRODUCTS = [
    {
        "title": "Classic Crew Tee",
        "price": 499,
        "category": "T-Shirts",
        "description": "Soft cotton crew neck tee.",
        "images": ["https://images.unsplash.com/photo-1521572163474-6864f9cf17ab"],
        "sizes": ["s", "M", "l ", "XL"],
        "stock": 40,
    },
    {
        "title": "Oversized Graphic Tee",
        "price": 699,
        "category": "T-Shirts",
        "description": "Drop shoulder fit with front print.",
        "images": ["https://images.unsplash.com/photo-1503341504253-dff4815485f1"],
        "sizes": ["M", "L", "XL", "XXL"],
        "stock": 25,
    },
    {
        "title": "Fleece Pullover Hoodie",
        "price": 1299,
        "category": "Hoodies",
        "description": "Brushed fleece, kangaroo pocket.",
        "images": ["https://images.unsplash.com/photo-1556821840-3a63f95609a7"],
        "sizes": ["S", "M", "L"],
        "stock": 15,
    },
    {
        "title": "Linen Summer Shirt",
        "price": 999,
        "category": "Summer Wear!",
        "description": "Breathable linen blend.",
        "images": ["https://images.unsplash.com/photo-1596755094514-f87e34085b2c"],
        "sizes": ["M", "L", "XL"],
        "stock": 20,
        "attributes": {"fabric": "linen"},
    },
]


@app.post("/seed")
def seed(db=Depends(get_db)):
    if db["product"].count_documents({}) > 0:
        return {"ok": True, "data": {"seeded": False}, "message": "Products already exist"}
    for name in DEMO_CATEGORIES:
        if not db["category"].find_one({"name": name}):
            create_document(db, "category", CategorySchema(name=name))
    for p in DEMO_PRODUCTS:
        create_document(db, "product", ProductSchema(**p))
    # create admin user if none
    if db["user"].count_documents({"role": "admin"}) == 0:
        admin = UserSchema(
            name="Admin",
            email=ADMIN_EMAIL,
            password_hash=auth.hash_password(ADMIN_PASSWORD),
            role="admin",
        )
        create_document(db, "user", admin)
        logger.info("Default admin %s created", ADMIN_EMAIL)
    return {"ok": True, "data": {"seeded": True, "products": db["product"].count_documents({})}}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
