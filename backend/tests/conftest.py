"""
テスト用の共通フィクスチャとセットアップ
"""
import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from itertools import count
from typing import AsyncGenerator, List, Optional

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.api.deps import get_publisher, get_reference_store
from app.core.clock import utc_now
from app.core.config import settings
from app.db.base import Base
from app.db.session import get_async_session
from app.main import app
from app.messaging.publisher import LoggingEventPublisher
from app.models import Article, ArticleKind, Board, Keyword
from app.schemas import ArticleCreate
from app.schemas.events import CamelModel
from app.services.reference_store import ReferenceStore


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """テスト用データベースエンジン（テストごとに別ファイル）"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    # テーブル作成
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # クリーンアップ
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """テスト用データベースセッション"""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def regular_board(db_session: AsyncSession) -> Board:
    board = Board(name="자유게시판", description="자유롭게 글을 쓰는 곳", display_order=1)
    db_session.add(board)
    await db_session.commit()
    return board


@pytest_asyncio.fixture
async def other_board(db_session: AsyncSession) -> Board:
    board = Board(name="질문게시판", display_order=2)
    db_session.add(board)
    await db_session.commit()
    return board


@pytest_asyncio.fixture
async def event_board(db_session: AsyncSession) -> Board:
    board = Board(name=settings.EVENT_BOARD_NAME, display_order=3)
    db_session.add(board)
    await db_session.commit()
    return board


@pytest_asyncio.fixture
async def notice_board(db_session: AsyncSession) -> Board:
    board = Board(name=settings.NOTICE_BOARD_NAME, display_order=4)
    db_session.add(board)
    await db_session.commit()
    return board


@pytest_asyncio.fixture
async def common_keyword(db_session: AsyncSession) -> Keyword:
    keyword = Keyword(name="공통", board_id=None)
    db_session.add(keyword)
    await db_session.commit()
    return keyword


@pytest_asyncio.fixture
async def board_keyword(db_session: AsyncSession, regular_board: Board) -> Keyword:
    keyword = Keyword(name="잡담", board_id=regular_board.id)
    db_session.add(keyword)
    await db_session.commit()
    return keyword


@pytest_asyncio.fixture
async def other_board_keyword(db_session: AsyncSession, other_board: Board) -> Keyword:
    keyword = Keyword(name="질문", board_id=other_board.id)
    db_session.add(keyword)
    await db_session.commit()
    return keyword


@pytest_asyncio.fixture
async def sample_article(db_session: AsyncSession, regular_board: Board) -> Article:
    """サンプル記事"""
    article = TestDataFactory.new_article(board_id=regular_board.id)
    db_session.add(article)
    await db_session.commit()
    article.pull_domain_events()
    return article


@pytest_asyncio.fixture
async def reference_store(session_factory, regular_board, other_board, event_board, notice_board) -> ReferenceStore:
    store = ReferenceStore()
    await store.refresh(session_factory)
    return store


@pytest.fixture
def factory():
    return TestDataFactory


class RecordingEventPublisher(LoggingEventPublisher):
    """発行したイベントを記録するテスト用パブリッシャー"""

    def __init__(self):
        self.published: List[CamelModel] = []

    async def publish(self, event: CamelModel) -> None:
        self.published.append(event)
        await super().publish(event)


@pytest.fixture
def publisher() -> RecordingEventPublisher:
    return RecordingEventPublisher()


@pytest_asyncio.fixture
async def client(session_factory, reference_store, publisher) -> AsyncGenerator[AsyncClient, None]:
    """依存性をテスト用DBに差し替えたHTTPクライアント"""
    async def override_get_async_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_reference_store] = lambda: reference_store
    app.dependency_overrides[get_publisher] = lambda: publisher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# テストデータ作成用のヘルパー関数
class TestDataFactory:
    """テストデータ作成用ファクトリー"""
    __test__ = False

    _sequence = count(1)

    @classmethod
    def new_id(cls, prefix: str = "article") -> str:
        return f"{prefix}-{next(cls._sequence):010d}"

    @classmethod
    def new_article(
        cls,
        board_id: int,
        kind: ArticleKind = ArticleKind.REGULAR,
        created_at: Optional[datetime] = None,
        **kwargs
    ) -> Article:
        """記事エンティティ（created_at を指定すると作成・更新日時を固定する）"""
        defaults = {
            "id": cls.new_id(),
            "title": "Test Article",
            "content": "Test content",
            "writer_id": "writer-1",
        }
        if kind == ArticleKind.EVENT:
            now = utc_now()
            defaults["event_start_date"] = now - timedelta(days=1)
            defaults["event_end_date"] = now + timedelta(days=1)
        defaults.update(kwargs)

        article = Article.create(kind=kind, board_id=board_id, **defaults)
        if created_at is not None:
            article.created_at = created_at
            article.updated_at = created_at
        return article

    @staticmethod
    def create_article_data(**kwargs) -> ArticleCreate:
        """記事作成データ"""
        defaults = {
            "title": "Test Article",
            "content": "Test content",
            "writer_id": "writer-1",
        }
        defaults.update(kwargs)
        return ArticleCreate(**defaults)

    @staticmethod
    def image_event(reference_id: Optional[str], images: Optional[List[dict]]) -> dict:
        """画像変更イベント（camelCase）"""
        return {"referenceId": reference_id, "images": images}
