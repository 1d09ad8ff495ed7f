from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.exceptions import DatabaseConnectionError
from app.core.logging import get_logger
from app.db.session import async_engine
from app.db.base import Base
import app.models  # noqa: F401  メタデータへのテーブル登録

# このモジュール用のロガーを取得
logger = get_logger(__name__)


class Database:
    """データベース初期化クラス"""

    def __init__(self, engine: AsyncEngine = async_engine):
        self.engine = engine

    async def init(self):
        """データベースの初期化"""
        try:
            logger.info("Initializing database...")

            # テーブルの作成
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("Database initialized successfully")

        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {str(e)}")
            raise DatabaseConnectionError(f"データベースの初期化に失敗しました: {str(e)}") from e

    async def close(self):
        """データベース接続のクローズ"""
        try:
            logger.info("Closing database connections...")
            await self.engine.dispose()
            logger.info("Database connections closed successfully")
        except Exception as e:
            logger.error(f"Error closing database connections: {str(e)}")
            raise
