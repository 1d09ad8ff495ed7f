from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from datetime import datetime, timedelta
from typing import Optional

from app.core.clock import utc_now
from app.core.exceptions import DatabaseQueryError
from app.core.logging import get_logger
from app.models import SchedulerLock


class SchedulerLockCRUD:
    """
    定期ジョブ用の排他ロック

    lock_at_most: ジョブが異常終了してもこの時間が過ぎれば他インスタンスが取得できる
    lock_at_least: ジョブがすぐ終わってもこの時間は再取得させない
    ロックは他インスタンスから即座に見える必要があるため、取得・解放ともここでコミットする。
    """
    logger = get_logger(__name__)

    async def acquire(
        self,
        db: AsyncSession,
        name: str,
        locked_by: str,
        lock_at_most: timedelta,
        now: Optional[datetime] = None
    ) -> bool:
        now = now or utc_now()
        locked_until = now + lock_at_most

        try:
            # 期限切れのロックを奪う
            result = await db.execute(
                update(SchedulerLock)
                .where(SchedulerLock.name == name, SchedulerLock.locked_until <= now)
                .values(locked_until=locked_until, locked_at=now, locked_by=locked_by)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                await db.commit()
                self.logger.info(f"Lock '{name}' acquired by {locked_by} until {locked_until.isoformat()}")
                return True

            # 初回はロック行を作る（既に有効なロックがあれば一意制約違反）
            db.add(SchedulerLock(name=name, locked_until=locked_until, locked_at=now, locked_by=locked_by))
            await db.commit()
        except IntegrityError:
            await db.rollback()
            self.logger.info(f"Lock '{name}' is held by another instance")
            return False
        except SQLAlchemyError as e:
            await db.rollback()
            self.logger.error(f"Error acquiring lock '{name}': {str(e)}")
            raise DatabaseQueryError(f"ロックの取得中にエラーが発生しました: {str(e)}") from e

        self.logger.info(f"Lock '{name}' acquired by {locked_by} until {locked_until.isoformat()}")
        return True

    async def release(
        self,
        db: AsyncSession,
        name: str,
        locked_by: str,
        lock_at_least: timedelta,
        now: Optional[datetime] = None
    ) -> None:
        now = now or utc_now()
        try:
            result = await db.execute(
                select(SchedulerLock).where(SchedulerLock.name == name, SchedulerLock.locked_by == locked_by)
            )
            lock = result.scalar_one_or_none()
            if lock is None:
                self.logger.warning(f"Lock '{name}' is not held by {locked_by}")
                return

            lock.locked_until = max(now, lock.locked_at + lock_at_least)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            self.logger.error(f"Error releasing lock '{name}': {str(e)}")
            raise DatabaseQueryError(f"ロックの解放中にエラーが発生しました: {str(e)}") from e

        self.logger.info(f"Lock '{name}' released by {locked_by}, locked until {lock.locked_until.isoformat()}")


# シングルトンインスタンス
scheduler_lock_crud = SchedulerLockCRUD()
