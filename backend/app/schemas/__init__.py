# Article schemas
from .article import (
    EventPhase,
    ArticleBase,
    ArticleCreate,
    ArticleUpdate,
    ArticleDelete,
    ArticleBulkRequest,
    ImageInfo,
    KeywordInfo,
    Article,
    ArticleSearchCriteria,
    ArticleCursorPage
)

# Event schemas
from .events import (
    ImageChange,
    ImagesChangedEvent,
    LegacyImageChange,
    ArticleCreatedEvent,
    ArticleDeletedEvent
)

# Reference schemas
from .reference import (
    BoardInfo,
    KeywordEnum
)

__all__ = [
    # Article schemas
    "EventPhase",
    "ArticleBase",
    "ArticleCreate",
    "ArticleUpdate",
    "ArticleDelete",
    "ArticleBulkRequest",
    "ImageInfo",
    "KeywordInfo",
    "Article",
    "ArticleSearchCriteria",
    "ArticleCursorPage",

    # Event schemas
    "ImageChange",
    "ImagesChangedEvent",
    "LegacyImageChange",
    "ArticleCreatedEvent",
    "ArticleDeletedEvent",

    # Reference schemas
    "BoardInfo",
    "KeywordEnum"
]
