"""
定期ジョブのテスト
"""
import pytest
from sqlalchemy import func, select

from app.crud.article import article_crud
from app.models import Article, Keyword
from app.services.scheduler import ArticleScheduler, cleanup_deleted_articles, run_locked_cleanup


async def _seed(session_factory, regular_board, common_keyword, factory):
    async with session_factory() as session:
        keyword = await session.get(Keyword, common_keyword.id)
        deleted = factory.new_article(board_id=regular_board.id)
        active = factory.new_article(board_id=regular_board.id)
        deleted.add_keywords([keyword])
        active.add_keywords([keyword])
        deleted.delete()
        session.add_all([deleted, active])
        await session.commit()
    return deleted, active


class TestCleanup:
    """クリーンアップのテストクラス"""

    @pytest.mark.asyncio
    async def test_cleanup_deleted_articles(self, session_factory, regular_board, common_keyword, factory):
        deleted, active = await _seed(session_factory, regular_board, common_keyword, factory)

        removed = await cleanup_deleted_articles(session_factory)

        async with session_factory() as session:
            remaining = await session.scalar(select(func.count()).select_from(Article))
            keyword = await session.get(Keyword, common_keyword.id)
        assert removed == 1
        assert remaining == 1
        assert keyword.usage_count == 1

    @pytest.mark.asyncio
    async def test_locked_cleanup_runs_once_within_lock_window(
        self, session_factory, regular_board, common_keyword, factory
    ):
        deleted, _ = await _seed(session_factory, regular_board, common_keyword, factory)

        first = await run_locked_cleanup(session_factory, "node-a")
        second = await run_locked_cleanup(session_factory, "node-b")

        async with session_factory() as session:
            assert await article_crud.find(session, deleted.id) is None
        assert first is True
        assert second is False


class TestArticleScheduler:
    """スケジューラ登録のテストクラス"""

    @pytest.mark.asyncio
    async def test_jobs_are_registered(self, session_factory, reference_store):
        scheduler = ArticleScheduler(session_factory, reference_store)

        scheduler.start()
        try:
            job_ids = {job.id for job in scheduler._scheduler.get_jobs()}
        finally:
            scheduler.shutdown()

        assert job_ids == {"cleanup_deleted_articles", "refresh_reference_data"}

    @pytest.mark.asyncio
    async def test_refresh_job_updates_store(self, session_factory, reference_store):
        scheduler = ArticleScheduler(session_factory, reference_store)
        version = reference_store.version

        await scheduler._refresh_job()

        assert reference_store.version == version + 1
