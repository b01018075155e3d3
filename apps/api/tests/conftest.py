import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./lounge_pipeline_test.db")
os.environ.setdefault("JWT_SECRET", "pipeline-test-secret-0123456789abcdef")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("BRIGHTDATA_API_KEY", "test-brightdata-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")

import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import models  # noqa: F401
from database import Base
from models.content import Content, ContentLoungeScore
from models.creator import Creator, CreatorUrl
from models.deleted_content import DeletedContent
from models.lounge import CreatorLounge, Lounge
from models.user import User
from services.normalization import normalize_profile_url


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "pipeline.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


class Seeder:
    """Small factory for the rows most tests need."""

    def __init__(self, session: AsyncSession):
        self.db = session

    async def user(self, role: str = "curator", email: Optional[str] = None) -> User:
        user = User(id=str(uuid.uuid4()), email=email or f"{role}-{uuid.uuid4().hex[:6]}@example.com", role=role)
        self.db.add(user)
        await self.db.commit()
        return user

    async def creator(self, name: str, urls: Optional[Dict[str, str]] = None) -> Creator:
        creator = Creator(id=str(uuid.uuid4()), display_name=name, username=name.lower().replace(" ", "_"))
        self.db.add(creator)
        for platform, url in (urls or {}).items():
            self.db.add(
                CreatorUrl(
                    creator_id=creator.id,
                    platform=platform,
                    url=url,
                    normalized_url=normalize_profile_url(url),
                )
            )
        await self.db.commit()
        return creator

    async def lounge(self, name: str, threshold: int = 60, creators: Iterable[Creator] = ()) -> Lounge:
        lounge = Lounge(id=str(uuid.uuid4()), name=name, theme_description=f"{name} topics", relevancy_threshold=threshold)
        self.db.add(lounge)
        for creator in creators:
            self.db.add(CreatorLounge(creator_id=creator.id, lounge_id=lounge.id))
        await self.db.commit()
        return lounge

    async def content(
        self,
        creator: Creator,
        *,
        platform: str = "linkedin",
        platform_content_id: Optional[str] = None,
        title: str = "Post",
        description: str = "",
        published_at: Optional[datetime] = None,
        score: Optional[int] = None,
        reason: Optional[str] = None,
        is_primary: bool = True,
        checked: Optional[bool] = None,
    ) -> Content:
        content = Content(
            id=str(uuid.uuid4()),
            creator_id=creator.id,
            platform=platform,
            platform_content_id=platform_content_id or uuid.uuid4().hex,
            title=title,
            description=description or title,
            url=f"https://example.com/{platform}/{uuid.uuid4().hex[:8]}",
            published_at=published_at or datetime.now(timezone.utc),
            is_primary=is_primary,
            processing_status="processed",
            relevancy_score=score,
            relevancy_reason=reason,
            relevancy_checked_at=datetime.now(timezone.utc) if (checked if checked is not None else score is not None) else None,
        )
        self.db.add(content)
        await self.db.commit()
        return content

    async def lounge_score(self, content: Content, lounge: Lounge, score: int, reason: str = "") -> ContentLoungeScore:
        row = ContentLoungeScore(
            content_id=content.id,
            lounge_id=lounge.id,
            score=score,
            reason=reason,
            checked_at=datetime.now(timezone.utc),
        )
        self.db.add(row)
        await self.db.commit()
        return row

    async def suppress(self, content: Content, reason: str = "low_relevancy") -> DeletedContent:
        marker = DeletedContent(
            platform_content_id=content.platform_content_id,
            platform=content.platform,
            creator_id=content.creator_id,
            deletion_reason=reason,
            title=content.title,
            url=content.url,
        )
        self.db.add(marker)
        await self.db.commit()
        return marker


@pytest.fixture
def seed(db):
    return Seeder(db)
