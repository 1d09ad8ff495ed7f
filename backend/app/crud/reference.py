from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from typing import Iterable, List, Optional

from app.core.exceptions import DatabaseQueryError
from app.core.logging import get_logger
from app.models import Board, Keyword


class ReferenceCRUD:
    """掲示板・キーワードの参照データ読み込み"""
    logger = get_logger(__name__)

    async def get_active_boards(self, db: AsyncSession) -> List[Board]:
        try:
            result = await db.execute(
                select(Board)
                .where(Board.is_active.is_(True))
                .order_by(Board.display_order, Board.id)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading boards: {str(e)}")
            raise DatabaseQueryError(f"掲示板の取得中にエラーが発生しました: {str(e)}") from e

    async def get_active_keywords(self, db: AsyncSession) -> List[Keyword]:
        try:
            result = await db.execute(
                select(Keyword)
                .where(Keyword.is_active.is_(True))
                .order_by(Keyword.id)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading keywords: {str(e)}")
            raise DatabaseQueryError(f"キーワードの取得中にエラーが発生しました: {str(e)}") from e

    async def get_board(self, db: AsyncSession, board_id: int) -> Optional[Board]:
        result = await db.execute(select(Board).where(Board.id == board_id))
        return result.scalar_one_or_none()

    async def get_board_by_name(self, db: AsyncSession, name: str) -> Optional[Board]:
        result = await db.execute(select(Board).where(Board.name == name))
        return result.scalar_one_or_none()

    async def get_keywords(
        self,
        db: AsyncSession,
        keyword_ids: Iterable[int],
        for_update: bool = False
    ) -> List[Keyword]:
        """
        IDでキーワードを取得

        for_update=True の場合は行ロックを取り、セッション内のインスタンスも
        最新の usage_count で上書きする。
        """
        ids = list(dict.fromkeys(keyword_ids))
        if not ids:
            return []

        stmt = select(Keyword).where(Keyword.id.in_(ids))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)

        try:
            result = await db.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading keywords {ids}: {str(e)}")
            raise DatabaseQueryError(f"キーワードの取得中にエラーが発生しました: {str(e)}") from e


# シングルトンインスタンス
reference_crud = ReferenceCRUD()
