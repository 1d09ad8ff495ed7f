from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.attributes import get_history, set_committed_value
from sqlalchemy.orm.exc import StaleDataError
from typing import List, Optional, Tuple

from app.core.exceptions import (
    ArticleNotFoundError,
    ConcurrentModificationError,
    DatabaseQueryError,
    InvalidParameterError,
)
from app.core.logging import get_logger
from app.models import Article, ArticleImage, ArticleStatus, Keyword, KeywordMapping


class ArticleCRUD:
    """記事集約の永続化（読み込み・保存・物理削除）"""
    logger = get_logger(__name__)

    async def find(self, db: AsyncSession, id: str) -> Optional[Article]:
        """IDで記事を取得（存在しなければ None）"""
        if not id:
            self.logger.error("Article ID is required")
            raise InvalidParameterError("id", id, "記事IDが必要です")

        try:
            result = await db.execute(select(Article).where(Article.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Database error retrieving article by id {id}: {str(e)}")
            raise DatabaseQueryError(f"記事ID取得中にデータベースエラーが発生しました: {str(e)}") from e

    async def load(self, db: AsyncSession, id: str) -> Article:
        """IDで記事を取得（存在しなければ ArticleNotFoundError）"""
        article = await self.find(db, id)
        if article is None:
            self.logger.info(f"Article with id {id} not found")
            raise ArticleNotFoundError(id)
        return article

    async def exists_by_id(self, db: AsyncSession, id: str) -> bool:
        result = await db.execute(
            select(func.count()).select_from(Article).where(Article.id == id)
        )
        return result.scalar_one() > 0

    async def get_many(self, db: AsyncSession, ids: List[str]) -> List[Article]:
        """複数IDで一括取得（削除済みは除外、指定順を維持）"""
        if not ids:
            return []
        if len(ids) > 100:
            raise InvalidParameterError("ids", len(ids), "一度に取得できるのは100件までです")

        try:
            result = await db.execute(
                select(Article).where(
                    Article.id.in_(ids),
                    Article.status != ArticleStatus.DELETED
                )
            )
            by_id = {article.id: article for article in result.scalars().all()}
            return [by_id[article_id] for article_id in dict.fromkeys(ids) if article_id in by_id]
        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving articles in bulk: {str(e)}")
            raise DatabaseQueryError(f"記事の一括取得中にエラーが発生しました: {str(e)}") from e

    async def save(self, db: AsyncSession, article: Article) -> Article:
        """
        記事集約を保存する

        version が読み込み時から変わっていれば ConcurrentModificationError。
        コミットは呼び出し元の責任。
        キーワードの usage_count は絶対値ではなく差分の UPDATE で反映する。
        """
        expected_version = article.version
        usage_deltas = self._take_usage_deltas(db)
        try:
            db.add(article)
            await db.flush()
            for keyword, before, delta in usage_deltas:
                await db.execute(
                    update(Keyword)
                    .where(Keyword.id == keyword.id)
                    .values(usage_count=Keyword.usage_count + delta)
                    .execution_options(synchronize_session=False)
                )
                set_committed_value(keyword, "usage_count", before + delta)
        except StaleDataError as e:
            self.logger.warning(
                f"Concurrent modification detected for article {article.id} (version {expected_version})"
            )
            raise ConcurrentModificationError(article.id, expected_version) from e
        except IntegrityError as e:
            self.logger.error(f"Integrity error saving article {article.id}: {str(e)}")
            raise DatabaseQueryError(f"記事の保存中に整合性エラーが発生しました: {str(e)}") from e
        except SQLAlchemyError as e:
            self.logger.error(f"Database error saving article {article.id}: {str(e)}")
            raise DatabaseQueryError(f"記事の保存中にデータベースエラーが発生しました: {str(e)}") from e

        self.logger.info(f"Saved article {article.id} (version {article.version})")
        return article

    def _take_usage_deltas(self, db: AsyncSession) -> List[Tuple[Keyword, int, int]]:
        """変更された usage_count を差分として取り出し、読み込み時の値に戻す"""
        deltas = []
        for obj in db.dirty:
            if not isinstance(obj, Keyword):
                continue
            history = get_history(obj, "usage_count")
            if not history.added or not history.deleted:
                continue
            before = history.deleted[0] or 0
            delta = (history.added[0] or 0) - before
            set_committed_value(obj, "usage_count", before)
            if delta:
                deltas.append((obj, before, delta))
        return deltas

    async def delete_where_status(self, db: AsyncSession, status: ArticleStatus) -> int:
        """
        指定ステータスの記事を画像・キーワード対応ごと物理削除する

        削除する対応行の数だけ各キーワードの usage_count を減らす。
        """
        try:
            # 対象は一度だけ確定させ、以降の文はすべてこのID集合に対して実行する
            result = await db.execute(
                select(Article.id).where(Article.status == status).with_for_update()
            )
            target_ids = list(result.scalars().all())
            if not target_ids:
                self.logger.info(f"No articles with status {status.value} to delete")
                return 0

            usage = await db.execute(
                select(KeywordMapping.keyword_id, func.count())
                .where(KeywordMapping.article_id.in_(target_ids))
                .group_by(KeywordMapping.keyword_id)
            )
            for keyword_id, count in usage.all():
                await db.execute(
                    update(Keyword)
                    .where(Keyword.id == keyword_id)
                    .values(usage_count=Keyword.usage_count - count)
                    .execution_options(synchronize_session=False)
                )

            await db.execute(
                delete(KeywordMapping)
                .where(KeywordMapping.article_id.in_(target_ids))
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(ArticleImage)
                .where(ArticleImage.article_id.in_(target_ids))
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(
                delete(Article)
                .where(Article.id.in_(target_ids))
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting articles with status {status.value}: {str(e)}")
            raise DatabaseQueryError(f"記事の物理削除中にエラーが発生しました: {str(e)}") from e

        deleted = result.rowcount or 0
        self.logger.info(f"Deleted {deleted} articles with status {status.value}")
        return deleted


# シングルトンインスタンス
article_crud = ArticleCRUD()
