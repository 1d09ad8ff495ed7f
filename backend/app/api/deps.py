from fastapi import Depends, Header, Request
from typing import Optional

from app.messaging.publisher import EventPublisher, LoggingEventPublisher
from app.services.article_service import ArticleService
from app.services.reference_store import ReferenceStore, reference_store


async def get_requester_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """上流が付与する X-User-Id（認証はここでは行わない）"""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


def get_publisher(request: Request) -> EventPublisher:
    publisher = getattr(request.app.state, "publisher", None)
    return publisher or LoggingEventPublisher()


def get_reference_store() -> ReferenceStore:
    return reference_store


def get_article_service(
    publisher: EventPublisher = Depends(get_publisher),
    store: ReferenceStore = Depends(get_reference_store)
) -> ArticleService:
    return ArticleService(publisher=publisher, store=store)
