from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from typing import List, Optional

from app.core.clock import utc_now
from app.core.config import settings
from app.core.exceptions import DatabaseQueryError, InvalidCursorError
from app.core.logging import get_logger
from app.core.pagination import Cursor, CursorPage
from app.models import Article, ArticleKind, ArticleStatus, KeywordMapping
from app.schemas import ArticleSearchCriteria, EventPhase


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains_ignore_case(column, value: Optional[str]):
    if value is None or not value.strip():
        return None
    return column.ilike(f"%{_escape_like(value)}%", escape="\\")


def status_filter(criteria: ArticleSearchCriteria):
    if criteria.status is None:
        return and_(
            Article.status != ArticleStatus.DELETED,
            Article.status != ArticleStatus.BLOCKED
        )
    return Article.status == criteria.status


def board_filter(criteria: ArticleSearchCriteria):
    if criteria.board_id is None:
        return None
    return Article.board_id == criteria.board_id


def title_filter(criteria: ArticleSearchCriteria):
    return _contains_ignore_case(Article.title, criteria.title)


def content_filter(criteria: ArticleSearchCriteria):
    return _contains_ignore_case(Article.content, criteria.content)


def writer_filter(criteria: ArticleSearchCriteria):
    writer_ids = [w for w in criteria.writer_ids if w]
    if not writer_ids:
        return None
    if len(writer_ids) == 1:
        return Article.writer_id == writer_ids[0]
    return Article.writer_id.in_(writer_ids)


def keywords_filter(criteria: ArticleSearchCriteria):
    # JOIN ではなく EXISTS にして行の重複を防ぐ
    if not criteria.keyword_ids:
        return None
    return (
        select(KeywordMapping.article_id)
        .where(
            KeywordMapping.article_id == Article.id,
            KeywordMapping.keyword_id.in_(criteria.keyword_ids)
        )
        .exists()
    )


def kind_filter(criteria: ArticleSearchCriteria):
    if criteria.event_phase is not None:
        return Article.kind == ArticleKind.EVENT
    if criteria.kind is None:
        return None
    return Article.kind == criteria.kind


def event_phase_filter(criteria: ArticleSearchCriteria, now: datetime):
    phase = criteria.event_phase
    if phase is None:
        return None
    if phase == EventPhase.ongoing:
        return and_(Article.event_start_date <= now, Article.event_end_date >= now)
    if phase == EventPhase.ended:
        return Article.event_end_date < now
    return Article.event_start_date > now


def cursor_filter(cursor: Optional[Cursor]):
    if cursor is None:
        return None
    return or_(
        Article.created_at < cursor.created_at,
        and_(Article.created_at == cursor.created_at, Article.id < cursor.id)
    )


def normalize_page_size(size: Optional[int]) -> int:
    if size is None or size <= 0:
        return settings.DEFAULT_PAGE_SIZE
    return min(size, settings.MAX_PAGE_SIZE)


class ArticleSearchCRUD:
    """カーソル方式の記事検索（(created_at DESC, id DESC) の全順序でページング）"""
    logger = get_logger(__name__)

    async def resolve_cursor(
        self,
        db: AsyncSession,
        token: Optional[str] = None,
        cursor_created_at: Optional[datetime] = None,
        cursor_id: Optional[str] = None
    ) -> Optional[Cursor]:
        """リクエストのカーソル指定を Cursor に変換（不正なら InvalidCursorError）"""
        if token is not None:
            if cursor_created_at is not None or cursor_id is not None:
                raise InvalidCursorError("cursor と cursor_created_at/cursor_id は同時に指定できません", token)
            return Cursor.decode(token)

        if cursor_created_at is None and cursor_id is None:
            return None

        if cursor_created_at is None:
            # ID だけ指定された場合はその記事の作成日時を使う
            Cursor.of(utc_now(), cursor_id)
            result = await db.execute(select(Article.created_at).where(Article.id == cursor_id))
            created_at = result.scalar_one_or_none()
            if created_at is None:
                raise InvalidCursorError("カーソルの記事が存在しません", cursor_id)
            return Cursor(created_at=created_at, id=cursor_id)

        return Cursor.of(cursor_created_at, cursor_id)

    async def search(
        self,
        db: AsyncSession,
        criteria: Optional[ArticleSearchCriteria] = None,
        cursor: Optional[Cursor] = None,
        size: Optional[int] = None
    ) -> CursorPage[Article]:
        criteria = criteria or ArticleSearchCriteria()
        page_size = normalize_page_size(size)
        now = utc_now()

        predicates = [
            p for p in (
                status_filter(criteria),
                board_filter(criteria),
                title_filter(criteria),
                content_filter(criteria),
                writer_filter(criteria),
                keywords_filter(criteria),
                kind_filter(criteria),
                event_phase_filter(criteria, now),
                cursor_filter(cursor),
            )
            if p is not None
        ]

        self.logger.info(
            f"Searching articles: size={page_size}, "
            f"cursor={(cursor.created_at.isoformat(), cursor.id) if cursor else None}"
        )
        try:
            result = await db.execute(
                select(Article)
                .where(*predicates)
                .order_by(Article.created_at.desc(), Article.id.desc())
                .limit(page_size + 1)
            )
            articles: List[Article] = list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error searching articles: {str(e)}")
            raise DatabaseQueryError(f"記事検索中にエラーが発生しました: {str(e)}") from e

        has_next = len(articles) > page_size
        if has_next:
            articles = articles[:page_size]

        next_cursor = None
        if has_next:
            last = articles[-1]
            next_cursor = Cursor(created_at=last.created_at, id=last.id)

        return CursorPage(items=articles, next_cursor=next_cursor, has_next=has_next, size=page_size)


# シングルトンインスタンス
article_search_crud = ArticleSearchCRUD()
