from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional
import enum

from app.models.enums import ArticleKind, ArticleStatus


class EventPhase(str, enum.Enum):
    ongoing = "ongoing"
    ended = "ended"
    upcoming = "upcoming"


# Article関連のスキーマ
class ArticleBase(BaseModel):
    title: str
    content: str


class ArticleCreate(ArticleBase):
    kind: ArticleKind = ArticleKind.REGULAR
    writer_id: str
    board_id: Optional[int] = None  # イベント・お知らせは固定の掲示板
    keyword_ids: List[int] = Field(default_factory=list)
    event_start_date: Optional[datetime] = None
    event_end_date: Optional[datetime] = None

    @field_validator('event_start_date', 'event_end_date', mode='before')
    @classmethod
    def empty_str_to_none(cls, v):
        if v == "":
            return None
        return v


class ArticleUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    board_id: Optional[int] = None
    keyword_ids: Optional[List[int]] = None  # None: 変更なし / []: 全解除
    event_start_date: Optional[datetime] = None
    event_end_date: Optional[datetime] = None


class ArticleDelete(BaseModel):
    reason: Optional[str] = None


class ArticleBulkRequest(BaseModel):
    ids: List[str] = Field(default_factory=list, max_length=100)


class ImageInfo(BaseModel):
    sequence: int
    image_id: str
    image_url: str

    class Config:
        from_attributes = True


class KeywordInfo(BaseModel):
    id: int
    name: str
    board_id: Optional[int] = None


class Article(ArticleBase):
    id: str
    kind: ArticleKind
    writer_id: str
    status: ArticleStatus
    view_count: int
    board_id: int
    first_image_url: Optional[str] = None
    images: List[ImageInfo] = Field(default_factory=list)
    keywords: List[KeywordInfo] = Field(default_factory=list)
    event_start_date: Optional[datetime] = None
    event_end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    version: Optional[int] = None

    @classmethod
    def from_entity(cls, article) -> "Article":
        return cls(
            id=article.id,
            kind=article.kind,
            title=article.title,
            content=article.content,
            writer_id=article.writer_id,
            status=article.status,
            view_count=article.view_count,
            board_id=article.board_id,
            first_image_url=article.first_image_url,
            images=[ImageInfo.model_validate(image) for image in article.images],
            keywords=[
                KeywordInfo(id=m.keyword.id, name=m.keyword.name, board_id=m.keyword.board_id)
                for m in article.keyword_mappings
            ],
            event_start_date=article.event_start_date,
            event_end_date=article.event_end_date,
            created_at=article.created_at,
            updated_at=article.updated_at,
            version=article.version,
        )


class ArticleSearchCriteria(BaseModel):
    """検索条件（すべて任意、ANDで結合）"""
    board_id: Optional[int] = None
    title: Optional[str] = None
    content: Optional[str] = None
    writer_ids: List[str] = Field(default_factory=list)
    status: Optional[ArticleStatus] = None  # 未指定時は DELETED・BLOCKED 以外
    keyword_ids: List[int] = Field(default_factory=list)
    kind: Optional[ArticleKind] = None
    event_phase: Optional[EventPhase] = None


class ArticleCursorPage(BaseModel):
    items: List[Article]
    next_cursor: Optional[str] = None
    next_cursor_created_at: Optional[datetime] = None
    next_cursor_id: Optional[str] = None
    has_next: bool
    size: int
