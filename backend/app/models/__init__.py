# モデルのインポート
from app.models.enums import ArticleKind, ArticleStatus
from app.models.board import Board
from app.models.keyword import Keyword, KeywordMapping
from app.models.article import Article, ArticleImage
from app.models.scheduler_lock import SchedulerLock

# すべてのモデルをエクスポート
__all__ = [
    "ArticleKind",
    "ArticleStatus",
    "Board",
    "Keyword",
    "KeywordMapping",
    "Article",
    "ArticleImage",
    "SchedulerLock"
]
