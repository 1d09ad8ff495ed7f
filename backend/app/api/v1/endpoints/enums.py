from fastapi import APIRouter, Depends, Query, Request
from typing import List, Optional

from app.api.deps import get_reference_store
from app.core.logging import get_request_logger
from app.schemas import BoardInfo, KeywordEnum
from app.services.reference_store import ReferenceStore

router = APIRouter()


@router.get("/boards", response_model=List[BoardInfo])
async def read_boards(
    request: Request,
    store: ReferenceStore = Depends(get_reference_store)
):
    """有効な掲示板一覧（表示順）"""
    logger = get_request_logger(request)
    logger.info(f"掲示板一覧取得リクエスト: snapshot version={store.version}")
    return [
        BoardInfo(id=b.id, name=b.name, description=b.description, display_order=b.display_order)
        for b in store.boards()
    ]


@router.get("/keywords", response_model=List[KeywordEnum])
async def read_keywords(
    request: Request,
    board_id: Optional[int] = Query(default=None, alias="boardId"),
    store: ReferenceStore = Depends(get_reference_store)
):
    """キーワード一覧（boardId 指定時は共通キーワードとその掲示板専用のもの）"""
    logger = get_request_logger(request)
    logger.info(f"キーワード一覧取得リクエスト: board_id={board_id}")

    keywords = store.keywords() if board_id is None else store.keywords_for_board(board_id)
    return [
        KeywordEnum(id=k.id, name=k.name, board_id=k.board_id, common=k.common)
        for k in keywords
    ]
