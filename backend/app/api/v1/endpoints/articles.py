from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import List, Optional

from app.api.deps import get_article_service, get_requester_id
from app.core.logging import get_request_logger
from app.db.session import get_async_session
from app.models import ArticleKind, ArticleStatus
from app.schemas import (
    Article as ArticleSchema,
    ArticleBulkRequest,
    ArticleCreate,
    ArticleCursorPage,
    ArticleDelete,
    ArticleSearchCriteria,
    ArticleUpdate,
    EventPhase,
)
from app.services.article_service import ArticleService

router = APIRouter()


@router.post("", response_model=ArticleSchema, status_code=status.HTTP_201_CREATED)
async def create_article(
    request: Request,
    article_in: ArticleCreate,
    db: AsyncSession = Depends(get_async_session),
    service: ArticleService = Depends(get_article_service)
):
    """記事を作成（種別は kind で指定）"""
    logger = get_request_logger(request)
    logger.info(f"記事作成リクエスト: kind={article_in.kind.value}, writer_id={article_in.writer_id}")

    article = await service.create(db, article_in)
    logger.info(f"記事作成成功: id={article.id}")
    return ArticleSchema.from_entity(article)


@router.get("", response_model=ArticleCursorPage)
async def search_articles(
    request: Request,
    board_id: Optional[int] = Query(default=None, alias="boardId"),
    title: Optional[str] = None,
    content: Optional[str] = None,
    writer_ids: List[str] = Query(default=[], alias="writerIds"),
    article_status: Optional[ArticleStatus] = Query(default=None, alias="status"),
    keyword_ids: List[int] = Query(default=[], alias="keywordIds"),
    kind: Optional[ArticleKind] = None,
    event_phase: Optional[EventPhase] = Query(default=None, alias="eventPhase"),
    cursor: Optional[str] = None,
    cursor_created_at: Optional[datetime] = Query(default=None, alias="cursorCreatedAt"),
    cursor_id: Optional[str] = Query(default=None, alias="cursorId"),
    size: Optional[int] = None,
    db: AsyncSession = Depends(get_async_session),
    service: ArticleService = Depends(get_article_service)
):
    """記事をカーソル方式で検索"""
    logger = get_request_logger(request)
    criteria = ArticleSearchCriteria(
        board_id=board_id,
        title=title,
        content=content,
        writer_ids=writer_ids,
        status=article_status,
        keyword_ids=keyword_ids,
        kind=kind,
        event_phase=event_phase,
    )
    logger.info(f"記事検索リクエスト: criteria={criteria.model_dump(exclude_defaults=True)}, size={size}")

    page = await service.search(
        db,
        criteria,
        cursor=cursor,
        cursor_created_at=cursor_created_at,
        cursor_id=cursor_id,
        size=size,
    )
    next_cursor = page.next_cursor
    return ArticleCursorPage(
        items=[ArticleSchema.from_entity(article) for article in page.items],
        next_cursor=next_cursor.encode() if next_cursor else None,
        next_cursor_created_at=next_cursor.created_at if next_cursor else None,
        next_cursor_id=next_cursor.id if next_cursor else None,
        has_next=page.has_next,
        size=page.size,
    )


@router.post("/bulk", response_model=List[ArticleSchema])
async def read_articles_bulk(
    request: Request,
    bulk_in: ArticleBulkRequest,
    db: AsyncSession = Depends(get_async_session),
    service: ArticleService = Depends(get_article_service)
):
    """複数IDで一括取得"""
    logger = get_request_logger(request)
    logger.info(f"記事一括取得リクエスト: {len(bulk_in.ids)}件")

    articles = await service.get_many(db, bulk_in.ids)
    return [ArticleSchema.from_entity(article) for article in articles]


@router.get("/{article_id}", response_model=ArticleSchema)
async def read_article(
    request: Request,
    article_id: str,
    db: AsyncSession = Depends(get_async_session),
    service: ArticleService = Depends(get_article_service)
):
    """記事詳細を取得"""
    logger = get_request_logger(request)
    logger.info(f"記事詳細取得リクエスト: id={article_id}")

    article = await service.get(db, article_id)
    return ArticleSchema.from_entity(article)


@router.put("/{article_id}", response_model=ArticleSchema)
async def update_article(
    request: Request,
    article_id: str,
    article_in: ArticleUpdate,
    db: AsyncSession = Depends(get_async_session),
    requester_id: Optional[str] = Depends(get_requester_id),
    service: ArticleService = Depends(get_article_service)
):
    """記事を更新"""
    logger = get_request_logger(request)
    logger.info(f"記事更新リクエスト: id={article_id}, requester={requester_id}")

    article = await service.update(db, article_id, article_in, requester_id)
    return ArticleSchema.from_entity(article)


@router.delete("/{article_id}", response_model=ArticleSchema)
async def delete_article(
    request: Request,
    article_id: str,
    delete_in: Optional[ArticleDelete] = None,
    db: AsyncSession = Depends(get_async_session),
    requester_id: Optional[str] = Depends(get_requester_id),
    service: ArticleService = Depends(get_article_service)
):
    """記事を論理削除（削除済みなら何もしない）"""
    logger = get_request_logger(request)
    logger.info(f"記事削除リクエスト: id={article_id}, requester={requester_id}")

    reason = delete_in.reason if delete_in else None
    article = await service.delete(db, article_id, requester_id, reason)
    return ArticleSchema.from_entity(article)


@router.patch("/{article_id}/block", response_model=ArticleSchema)
async def block_article(
    request: Request,
    article_id: str,
    db: AsyncSession = Depends(get_async_session),
    service: ArticleService = Depends(get_article_service)
):
    logger = get_request_logger(request)
    logger.info(f"記事ブロックリクエスト: id={article_id}")

    article = await service.block(db, article_id)
    return ArticleSchema.from_entity(article)


@router.patch("/{article_id}/activate", response_model=ArticleSchema)
async def activate_article(
    request: Request,
    article_id: str,
    db: AsyncSession = Depends(get_async_session),
    service: ArticleService = Depends(get_article_service)
):
    logger = get_request_logger(request)
    logger.info(f"記事有効化リクエスト: id={article_id}")

    article = await service.activate(db, article_id)
    return ArticleSchema.from_entity(article)
