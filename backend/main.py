# backend/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from dotenv import load_dotenv

load_dotenv()

from config import settings
from database import init_db
from utils.storage import ensure_buckets

# Routers
from routes.auth import router as auth_router
from routes.admin import router as admin_router
from routes.logs import router as logs_router
from routes.cart import router as cart_router
from routes.orders import router as orders_router
from routes.products import router as products_router
from routes.addresses import router as addresses_router
from relay import app as relay_app

RELAY_PREFIX = "/relay"

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Startup
init_db()
ensure_buckets()


class APICORSMiddleware(CORSMiddleware):
    """CORS for the storefront API; the mounted relay answers cross-origin calls itself."""

    async def __call__(self, scope, receive, send):
        path = scope.get("path", "") if scope["type"] == "http" else ""
        if path == RELAY_PREFIX or path.startswith(RELAY_PREFIX + "/"):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


app = FastAPI(title="Storefront API", version="1.0.0")

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")

origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    APICORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(products_router)
app.include_router(cart_router)
app.include_router(addresses_router)
app.include_router(orders_router)
app.include_router(admin_router)
app.include_router(logs_router)

# Payment-intent relay, also runnable on its own (python relay.py)
app.mount(RELAY_PREFIX, relay_app)


@app.get("/")
def read_root():
    return {"message": "Storefront API is running"}
