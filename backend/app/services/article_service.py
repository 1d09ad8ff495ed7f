from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    ArticleBlockedError,
    ArticleNotFoundError,
    BoardNotFoundError,
    KeywordNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.core.id_generator import SnowflakeIdGenerator, id_generator
from app.core.logging import get_logger
from app.core.pagination import Cursor, CursorPage
from app.crud.article import article_crud
from app.crud.article_search import article_search_crud
from app.crud.reference import reference_crud
from app.messaging.publisher import EventPublisher, LoggingEventPublisher
from app.models import Article, ArticleKind, Keyword
from app.schemas import ArticleCreate, ArticleSearchCriteria, ArticleUpdate
from app.services.reference_store import ReferenceStore, reference_store

logger = get_logger(__name__)


class ArticleService:
    """記事のユースケース（1操作1トランザクション、コミット後にイベント発行）"""

    def __init__(
        self,
        publisher: Optional[EventPublisher] = None,
        store: ReferenceStore = reference_store,
        ids: SnowflakeIdGenerator = id_generator
    ):
        self.publisher = publisher or LoggingEventPublisher()
        self.store = store
        self.ids = ids

    # === 作成 ===

    async def create(self, db: AsyncSession, data: ArticleCreate) -> Article:
        board_id = await self._resolve_board(db, data.kind, data.board_id)
        # 同じキーワードを付ける並行作成と競合しないよう行をロックして読む
        keywords = await self._load_keywords(db, data.keyword_ids, board_id, for_update=True)

        article = Article.create(
            kind=data.kind,
            id=self.ids.generate(),
            title=data.title,
            content=data.content,
            writer_id=data.writer_id,
            board_id=board_id,
            event_start_date=data.event_start_date,
            event_end_date=data.event_end_date,
        )
        article.add_keywords(keywords)

        await article_crud.save(db, article)
        await db.commit()
        logger.info(f"Created {article.kind.value} article {article.id} on board {board_id}")

        await self.publisher.publish_all(article.pull_domain_events())
        return article

    # === 参照 ===

    async def get(self, db: AsyncSession, article_id: str) -> Article:
        """公開中の記事を取得（削除済みは存在しない扱い、ブロック中は403）"""
        article = await article_crud.find(db, article_id)
        if article is None or article.is_deleted():
            raise ArticleNotFoundError(article_id)
        if article.is_blocked():
            raise ArticleBlockedError(article_id)
        return article

    async def get_many(self, db: AsyncSession, article_ids: List[str]) -> List[Article]:
        return await article_crud.get_many(db, article_ids)

    async def search(
        self,
        db: AsyncSession,
        criteria: Optional[ArticleSearchCriteria] = None,
        cursor: Optional[str] = None,
        cursor_created_at: Optional[datetime] = None,
        cursor_id: Optional[str] = None,
        size: Optional[int] = None
    ) -> CursorPage[Article]:
        resolved: Optional[Cursor] = await article_search_crud.resolve_cursor(
            db, cursor, cursor_created_at, cursor_id
        )
        return await article_search_crud.search(db, criteria, resolved, size)

    # === 更新 ===

    async def update(
        self,
        db: AsyncSession,
        article_id: str,
        data: ArticleUpdate,
        requester_id: Optional[str] = None
    ) -> Article:
        article = await self._load_live(db, article_id)
        self._check_writer(article, requester_id)

        board_id = article.board_id
        if data.board_id is not None and data.board_id != article.board_id:
            if article.kind != ArticleKind.REGULAR:
                raise ValidationError(
                    "イベント・お知らせ記事の掲示板は変更できません",
                    details={"kind": article.kind.value},
                )
            board_id = await self._resolve_board(db, article.kind, data.board_id)

        # 変更前に関係するキーワード行をロックして最新の usage_count を読む
        new_ids = data.keyword_ids if data.keyword_ids is not None else article.keyword_ids()
        await reference_crud.get_keywords(db, set(article.keyword_ids()) | set(new_ids), for_update=True)
        keywords = await self._load_keywords(db, new_ids, board_id)

        article.change_board(board_id)
        article.update_content(title=data.title, content=data.content)
        if data.event_start_date is not None or data.event_end_date is not None:
            article.change_event_period(
                data.event_start_date or article.event_start_date,
                data.event_end_date or article.event_end_date,
            )
        if data.keyword_ids is not None:
            article.replace_keywords(keywords)

        await article_crud.save(db, article)
        await db.commit()
        logger.info(f"Updated article {article.id} (version {article.version})")

        await self.publisher.publish_all(article.pull_domain_events())
        return article

    async def delete(
        self,
        db: AsyncSession,
        article_id: str,
        requester_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Article:
        article = await article_crud.load(db, article_id)
        self._check_writer(article, requester_id)

        if not article.delete(reason):
            logger.info(f"Article {article_id} is already deleted")
            return article

        await article_crud.save(db, article)
        await db.commit()
        logger.info(f"Deleted article {article_id}")

        await self.publisher.publish_all(article.pull_domain_events())
        return article

    async def block(self, db: AsyncSession, article_id: str) -> Article:
        article = await article_crud.load(db, article_id)
        article.block()
        await article_crud.save(db, article)
        await db.commit()
        logger.info(f"Blocked article {article_id}")
        return article

    async def activate(self, db: AsyncSession, article_id: str) -> Article:
        article = await article_crud.load(db, article_id)
        article.activate()
        await article_crud.save(db, article)
        await db.commit()
        logger.info(f"Activated article {article_id}")
        return article

    # === 内部処理 ===

    async def _load_live(self, db: AsyncSession, article_id: str) -> Article:
        article = await article_crud.load(db, article_id)
        if article.is_deleted():
            raise ArticleNotFoundError(article_id)
        return article

    def _check_writer(self, article: Article, requester_id: Optional[str]) -> None:
        # 認証は上流の責務。ヘッダーが無い場合は検査しない
        if requester_id is not None and not article.is_written_by(requester_id):
            logger.warning(f"User {requester_id} is not the writer of article {article.id}")
            raise PermissionDeniedError("作成者のみ操作できます")

    async def _resolve_board(self, db: AsyncSession, kind: ArticleKind, board_id: Optional[int]) -> int:
        """種別に応じて掲示板を決め、存在して有効であることを確認する"""
        if kind == ArticleKind.EVENT:
            return await self._board_id_by_name(db, settings.EVENT_BOARD_NAME)
        if kind == ArticleKind.NOTICE:
            return await self._board_id_by_name(db, settings.NOTICE_BOARD_NAME)

        if board_id is None:
            raise ValidationError("掲示板IDが必要です", details={"field": "board_id"})
        if self.store.board(board_id) is not None:
            return board_id

        # スナップショットが古い可能性があるのでDBも確認
        board = await reference_crud.get_board(db, board_id)
        if board is None or not board.is_active:
            raise BoardNotFoundError(board_id=board_id)
        return board.id

    async def _board_id_by_name(self, db: AsyncSession, name: str) -> int:
        ref = self.store.board_by_name(name)
        if ref is not None:
            return ref.id
        board = await reference_crud.get_board_by_name(db, name)
        if board is None or not board.is_active:
            raise BoardNotFoundError(board_name=name)
        return board.id

    async def _load_keywords(
        self, db: AsyncSession, keyword_ids: Iterable[int], board_id: int, for_update: bool = False
    ) -> List[Keyword]:
        ids = list(dict.fromkeys(keyword_ids))
        if not ids:
            return []

        keywords = await reference_crud.get_keywords(db, ids, for_update=for_update)
        found = {k.id: k for k in keywords if k.is_active}
        missing = [i for i in ids if i not in found]
        if missing:
            raise KeywordNotFoundError(missing)

        unusable = [i for i in ids if not found[i].is_usable_in(board_id)]
        if unusable:
            raise ValidationError(
                "この掲示板では使えないキーワードが含まれています",
                details={"keyword_ids": unusable, "board_id": board_id},
            )
        return [found[i] for i in ids]
