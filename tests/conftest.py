import os
import tempfile

# Settings are read at import time, so point them at a throwaway database first
_db_dir = tempfile.mkdtemp(prefix="surplusmandi-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import jwt
import pytest
import pytest_asyncio
from sqlalchemy import select

from config import async_engine, AsyncSessionLocal, JWT_ALGORITHM, init_db
from models import Base, UserProfile, MasterItem, Listing, Notification
from main import app

JWT_SECRET = "test-secret"


def make_token(user_id, role=None, expires_in=3600, **claims):
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": f"{user_id}@example.com",
        "aud": "authenticated",
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    if role:
        payload["user_metadata"] = {"role": role}
    payload.update(claims)
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth_headers(user_id, role=None):
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest_asyncio.fixture(autouse=True)
async def reset_database():
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()
    yield


@pytest.fixture
def session_factory():
    return AsyncSessionLocal


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def mint_token():
    return make_token


@pytest.fixture
def notifications_for(session_factory):
    """Notifications stored for a profile, oldest first"""
    async def _notifications_for(profile):
        async with session_factory() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == profile.id)
                .order_by(Notification.created_at)
            )
            return result.scalars().all()

    return _notifications_for


@pytest_asyncio.fixture
async def make_profile(session_factory):
    async def _make_profile(name, role="user", phone="9876543210", **fields):
        profile = UserProfile(
            user_id=uuid.uuid4(),
            email=f"{name.lower().replace(' ', '.')}@example.com",
            name=name,
            phone=phone,
            role=role,
            **fields
        )
        async with session_factory() as session:
            session.add(profile)
            await session.commit()
        profile.headers = auth_headers(profile.user_id)
        return profile

    return _make_profile


@pytest_asyncio.fixture
async def make_listing(session_factory):
    async def _make_listing(seller, master_item, price=2500, quantity=10, unit="kg", is_active=True):
        listing = Listing(
            seller_id=seller.id,
            master_item_id=master_item.id,
            image_url="https://cdn.example.com/onions.jpg",
            description="Fresh red onions, end of day stock",
            price=price,
            quantity=quantity,
            unit=unit,
            is_active=is_active
        )
        async with session_factory() as session:
            session.add(listing)
            await session.commit()
        return listing

    return _make_listing


@pytest_asyncio.fixture
async def marketplace(session_factory, make_profile, make_listing):
    """A seller with one active onion listing, a buyer and an unrelated user"""
    seller = await make_profile(
        "Ravi Kumar",
        shop_name="Ravi Chaat Corner",
        shop_address="12 MG Road, Pune",
        image_url="https://cdn.example.com/ravi.jpg"
    )
    buyer = await make_profile("Asha Patel", shop_name="Asha Pav Bhaji")
    outsider = await make_profile("Imran Shaikh")

    master_item = MasterItem(name="Onion", category="Vegetable", image_url="https://cdn.example.com/onion.png")
    async with session_factory() as session:
        session.add(master_item)
        await session.commit()

    listing = await make_listing(seller, master_item)

    return SimpleNamespace(
        seller=seller,
        buyer=buyer,
        outsider=outsider,
        master_item=master_item,
        listing=listing
    )
