"""
定期ジョブ

- 毎日 04:15 に論理削除済み記事を物理削除（フリート内で1インスタンスのみ）
- 24時間ごとに参照データを再読み込み
"""
from datetime import timedelta
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger
from app.crud.article import article_crud
from app.crud.scheduler_lock import scheduler_lock_crud
from app.db.session import AsyncSessionLocal
from app.models import ArticleStatus
from app.services.reference_store import ReferenceStore, reference_store

logger = get_logger(__name__)

CLEANUP_LOCK_NAME = "cleanup_deleted_articles"


async def cleanup_deleted_articles(session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> int:
    """DELETED の記事を画像・キーワード対応ごと物理削除する"""
    async with session_factory() as session:
        try:
            deleted = await article_crud.delete_where_status(session, ArticleStatus.DELETED)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    logger.info(f"Cleanup removed {deleted} deleted articles")
    return deleted


async def run_locked_cleanup(
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    instance_name: str = settings.INSTANCE_NAME
) -> bool:
    """ロックを取れた場合だけクリーンアップを実行する（実行したら True）"""
    async with session_factory() as session:
        acquired = await scheduler_lock_crud.acquire(
            session,
            CLEANUP_LOCK_NAME,
            instance_name,
            timedelta(seconds=settings.CLEANUP_LOCK_AT_MOST_SECONDS),
        )
    if not acquired:
        logger.info("Cleanup skipped, another instance holds the lock")
        return False

    try:
        await cleanup_deleted_articles(session_factory)
    except Exception as e:
        logger.error(f"Cleanup failed: {str(e)}", exc_info=True)
    finally:
        async with session_factory() as session:
            await scheduler_lock_crud.release(
                session,
                CLEANUP_LOCK_NAME,
                instance_name,
                timedelta(seconds=settings.CLEANUP_LOCK_AT_LEAST_SECONDS),
            )
    return True


class ArticleScheduler:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        store: ReferenceStore = reference_store
    ):
        self.session_factory = session_factory
        self.store = store
        self._scheduler = AsyncIOScheduler()

    async def _cleanup_job(self) -> None:
        await run_locked_cleanup(self.session_factory)

    async def _refresh_job(self) -> None:
        try:
            await self.store.refresh(self.session_factory)
        except Exception as e:
            # 失敗しても前回のスナップショットを使い続ける
            logger.error(f"Reference data refresh failed: {str(e)}")

    def start(self) -> None:
        if self._scheduler.running:
            return

        self._scheduler.add_job(
            self._cleanup_job,
            trigger=CronTrigger.from_crontab(settings.CLEANUP_CRON),
            id="cleanup_deleted_articles",
            name="Cleanup deleted articles",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.add_job(
            self._refresh_job,
            trigger=IntervalTrigger(hours=settings.REFERENCE_REFRESH_HOURS),
            id="refresh_reference_data",
            name="Refresh reference data",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info("Article scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Article scheduler shutdown")
