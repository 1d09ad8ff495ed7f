from fastapi import APIRouter

from app.api.v1.endpoints import articles, enums

api_router = APIRouter()

# 各エンドポイントのルーターを登録
api_router.include_router(articles.router, prefix="/articles", tags=["記事"])
api_router.include_router(enums.router, prefix="/enums", tags=["参照データ"])
