import os
from dataclasses import dataclass
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("TRACING_ENABLED", "false")

from engage_api import models  # noqa: E402,F401
from engage_api.app import create_app  # noqa: E402
from engage_api.db.base import Base  # noqa: E402
from engage_api.db.session import get_session  # noqa: E402
from engage_api.models import (  # noqa: E402
    Brand,
    Member,
    MembershipTier,
    MissionType,
    RewardItem,
    RewardItemKind,
    RewardSource,
    RewardSourceKind,
)
from engage_api.observability.rewards import get_rewards_store  # noqa: E402


@dataclass
class SeededBrand:
    brand_id: UUID
    member_id: UUID
    bronze_id: UUID
    silver_id: UUID
    gold_id: UUID
    wheel_id: UUID
    mission_id: UUID
    item_ids: dict[str, UUID]


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rewards_store():
    get_rewards_store().reset()
    yield
    get_rewards_store().reset()


@pytest_asyncio.fixture
async def seeded(session_factory) -> SeededBrand:
    """Brand with Bronze/Silver/Gold tiers, one member, a capped wheel and a mission."""

    async with session_factory() as session:
        brand = Brand(slug="acme", name="Acme")
        session.add(brand)
        await session.flush()

        bronze = MembershipTier(brand_id=brand.id, slug="bronze", name="Bronze", min_points=0, max_points=999, benefits=[])
        silver = MembershipTier(brand_id=brand.id, slug="silver", name="Silver", min_points=1000, max_points=4999, benefits=[])
        gold = MembershipTier(brand_id=brand.id, slug="gold", name="Gold", min_points=5000, max_points=None, benefits=[])
        session.add_all([bronze, silver, gold])
        await session.flush()

        member = Member(brand_id=brand.id, external_ref="member-1", current_tier_id=bronze.id)
        wheel = RewardSource(
            brand_id=brand.id,
            kind=RewardSourceKind.WHEEL,
            name="Daily wheel",
            daily_action_cap=1,
        )
        mission = RewardSource(
            brand_id=brand.id,
            kind=RewardSourceKind.MISSION,
            name="Spin five times",
            mission_type=MissionType.SPINS_COMPLETED,
            target_value=5,
            reward_points=250,
            is_repeatable=False,
        )
        session.add_all([member, wheel, mission])
        await session.flush()

        items = [
            RewardItem(source_id=wheel.id, name="A", kind=RewardItemKind.POINTS, value=100, probability=0.2, position=0),
            RewardItem(source_id=wheel.id, name="B", kind=RewardItemKind.COUPON, value=0, probability=0.3, position=1),
            RewardItem(source_id=wheel.id, name="C", kind=RewardItemKind.NOTHING, value=0, probability=0.5, position=2),
        ]
        session.add_all(items)
        await session.commit()

        return SeededBrand(
            brand_id=brand.id,
            member_id=member.id,
            bronze_id=bronze.id,
            silver_id=silver.id,
            gold_id=gold.id,
            wheel_id=wheel.id,
            mission_id=mission.id,
            item_ids={item.name: item.id for item in items},
        )

