"""
ReferenceStore のテスト
"""
import asyncio
import pytest

from app.core.config import settings
from app.models import Board, Keyword
from app.services.reference_store import ReferenceStore


class TestReferenceStore:
    """参照データストアのテストクラス"""

    @pytest.mark.asyncio
    async def test_empty_before_refresh(self):
        store = ReferenceStore()

        assert store.version == 0
        assert store.boards() == ()
        assert store.board_by_name("자유게시판") is None

    @pytest.mark.asyncio
    async def test_refresh_loads_active_boards_and_keywords(
        self, session_factory, regular_board, other_board, common_keyword, board_keyword, other_board_keyword
    ):
        async with session_factory() as session:
            session.add(Board(name="폐쇄게시판", is_active=False, display_order=9))
            session.add(Keyword(name="비활성", is_active=False))
            await session.commit()
        store = ReferenceStore()

        snapshot = await store.refresh(session_factory)

        assert snapshot.version == 1
        assert [b.name for b in store.boards()] == ["자유게시판", "질문게시판"]
        assert store.board_by_name("자유게시판").id == regular_board.id
        assert store.board(other_board.id).name == "질문게시판"
        assert {k.id for k in store.keywords()} == {common_keyword.id, board_keyword.id, other_board_keyword.id}

    @pytest.mark.asyncio
    async def test_keywords_for_board(
        self, session_factory, regular_board, common_keyword, board_keyword, other_board_keyword
    ):
        store = ReferenceStore()
        await store.refresh(session_factory)

        keywords = store.keywords_for_board(regular_board.id)

        assert {k.id for k in keywords} == {common_keyword.id, board_keyword.id}
        assert store.keyword(common_keyword.id).common is True
        assert store.keyword(board_keyword.id).common is False

    @pytest.mark.asyncio
    async def test_refresh_swaps_snapshot(self, session_factory, regular_board):
        """読み取り側が持っている古いスナップショットは変化しない"""
        store = ReferenceStore()
        await store.refresh(session_factory)
        old = store.snapshot

        async with session_factory() as session:
            session.add(Board(name=settings.NOTICE_BOARD_NAME, display_order=5))
            await session.commit()
        await store.refresh(session_factory)

        assert store.version == 2
        assert len(old.boards) == 1
        assert len(store.boards()) == 2
        assert store.board_by_name(settings.NOTICE_BOARD_NAME) is not None

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_are_serialized(self, session_factory, regular_board):
        store = ReferenceStore()

        await asyncio.gather(*(store.refresh(session_factory) for _ in range(5)))

        assert store.version == 5
