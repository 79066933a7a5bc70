import os
import tempfile

import pytest

# Settings are read at import time, so the test database and upload folder
# must be in the environment before the application is imported
_tmp = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_tmp, "uploads")
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["VITE_STRIPE_SECRET_KEY"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from database import Base, engine, SessionLocal  # noqa: E402
from models.users import User  # noqa: E402
from models.product import Product, ProductVariant  # noqa: E402
from models.cart import Cart, CartItem  # noqa: E402
from utils.hashing import get_password_hash  # noqa: E402
from utils.tokenJWT import create_access_token  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def clean_db():
    # Every test starts from empty tables
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_user(email="customer@example.com", role="customer", full_name="Jane Customer"):
    """Insert a user and return (id, auth headers)."""
    with SessionLocal() as session:
        user = User(email=email, password_hash=get_password_hash(PASSWORD), role=role, full_name=full_name)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user.id, {"Authorization": f"Bearer {create_access_token(user)}"}


def create_product(name="Tee", price=10.0, variants=(("red", "M", 5),), category="shirts", description=None):
    """Insert a product with its variants; returns (product id, [variant ids])."""
    with SessionLocal() as session:
        product = Product(
            name=name, price=price, category=category, description=description,
            stock=sum(v[2] for v in variants),
        )
        for color, size, stock in variants:
            product.variants.append(ProductVariant(color=color, size=size, stock=stock))
        session.add(product)
        session.commit()
        session.refresh(product)
        return product.id, [v.id for v in product.variants]


def fill_cart(user_id, lines):
    """Put (variant id, quantity) lines straight into the user's cart."""
    with SessionLocal() as session:
        cart = session.query(Cart).filter(Cart.user_id == user_id).first()
        if not cart:
            cart = Cart(user_id=user_id)
            session.add(cart)
            session.flush()
        for variant_id, qty in lines:
            variant = session.get(ProductVariant, variant_id)
            session.add(CartItem(cart_id=cart.id, product_id=variant.product_id, product_variant_id=variant_id, quantity=qty))
        session.commit()


def variant_stock(variant_id):
    with SessionLocal() as session:
        return session.get(ProductVariant, variant_id).stock


def product_stock(product_id):
    with SessionLocal() as session:
        return session.get(Product, product_id).stock


@pytest.fixture
def customer():
    return create_user()


@pytest.fixture
def admin():
    return create_user(email="admin@example.com", role="admin", full_name="Ada Admin")
