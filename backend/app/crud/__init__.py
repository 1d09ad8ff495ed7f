# CRUD操作のインポート
from app.crud.article import article_crud
from app.crud.article_search import article_search_crud
from app.crud.reference import reference_crud
from app.crud.scheduler_lock import scheduler_lock_crud

# すべてのCRUDをエクスポート
__all__ = [
    "article_crud",
    "article_search_crud",
    "reference_crud",
    "scheduler_lock_crud"
]
