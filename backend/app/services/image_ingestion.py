"""
画像変更イベントの取り込み

同じイベントを何度処理しても同じ状態になる（全置換）。
保存の失敗（楽観的ロック競合・DBエラー）は呼び出し元へ伝播させ、
メッセージング側の再配信に任せる。それ以外はすべて結果として返す。
"""
import enum
import json
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConcurrentModificationError,
    DatabaseError,
    MalformedEventError,
    ValidationError,
)
from app.core.logging import get_logger
from app.crud.article import article_crud
from app.db.session import AsyncSessionLocal
from app.schemas.events import ImageChange, ImagesChangedEvent, LegacyImageChange

logger = get_logger(__name__)

_legacy_adapter = TypeAdapter(List[LegacyImageChange])


class IngestionStatus(str, enum.Enum):
    APPLIED = "APPLIED"
    SKIPPED = "SKIPPED"
    DROPPED = "DROPPED"


@dataclass(frozen=True)
class IngestionOutcome:
    status: IngestionStatus
    reason: Optional[str] = None
    article_id: Optional[str] = None

    @classmethod
    def applied(cls, article_id: str, reason: Optional[str] = None) -> "IngestionOutcome":
        return cls(IngestionStatus.APPLIED, reason, article_id)

    @classmethod
    def skipped(cls, reason: str, article_id: Optional[str] = None) -> "IngestionOutcome":
        return cls(IngestionStatus.SKIPPED, reason, article_id)

    @classmethod
    def dropped(cls, reason: str, article_id: Optional[str] = None) -> "IngestionOutcome":
        return cls(IngestionStatus.DROPPED, reason, article_id)


def parse_image_change_event(payload: Any) -> ImagesChangedEvent:
    """
    生のペイロードを ImagesChangedEvent に変換する

    受け付ける形式:
    - {"referenceId": ..., "images": [...]} （JSON文字列・bytes・dict）
    - 旧形式の配列 [{"referenceId": ..., "imageId": ..., ...}, ...]
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEventError("UTF-8 としてデコードできません") from e

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedEventError("JSON として解析できません", payload) from e

    try:
        if isinstance(payload, list):
            return _from_legacy(_legacy_adapter.validate_python(payload))
        if isinstance(payload, dict):
            return ImagesChangedEvent.model_validate(payload)
    except PydanticValidationError as e:
        raise MalformedEventError(f"構造が不正です ({e.error_count()} errors)", payload) from e

    raise MalformedEventError(f"未対応のペイロード型です: {type(payload).__name__}")


def _from_legacy(entries: List[LegacyImageChange]) -> ImagesChangedEvent:
    reference_ids = {entry.reference_id for entry in entries if entry.reference_id}
    if len(reference_ids) > 1:
        raise MalformedEventError("旧形式の referenceId が一致しません", sorted(reference_ids))

    return ImagesChangedEvent(
        reference_id=next(iter(reference_ids), None),
        images=[
            ImageChange(image_id=e.image_id, image_url=e.image_url, sequence=e.sequence)
            for e in entries
        ],
    )


def order_by_sequence(images: Sequence[ImageChange]) -> List[ImageChange]:
    """
    sequence の昇順に安定ソートする

    sequence を持たない要素は元の位置に残し、sequence を持つ要素だけを
    それらが占めていた位置の中で並べ替える。
    """
    slots = [i for i, image in enumerate(images) if image.sequence is not None]
    ordered = sorted((images[i] for i in slots), key=lambda image: image.sequence)

    result = list(images)
    for slot, image in zip(slots, ordered):
        result[slot] = image
    return result


def is_acceptable_url(url: str) -> bool:
    if url.startswith(("http://", "https://")):
        return True
    # "/" 始まりでも "//host/..." は別ホストを指すネットワークパスなので意図的に拒否する
    return url.startswith("/") and not url.startswith("//")


class ImageChangeHandler:
    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def handle(self, payload: Any) -> IngestionOutcome:
        try:
            event = parse_image_change_event(payload)
        except MalformedEventError as e:
            logger.warning(f"Dropping malformed image change event: {e.message}")
            return IngestionOutcome.dropped(e.message)

        if not event.reference_id or not event.reference_id.strip():
            logger.warning("Dropping image change event without referenceId")
            return IngestionOutcome.dropped("referenceId がありません")
        if event.images is None:
            logger.warning(f"Dropping image change event without images: {event.reference_id}")
            return IngestionOutcome.dropped("images がありません", event.reference_id)

        article_id = event.reference_id
        images = self._valid_images(article_id, order_by_sequence(event.images))

        try:
            async with self.session_factory() as session:
                article = await article_crud.find(session, article_id)
                if article is None:
                    logger.info(f"Skipping image change event, article not found: {article_id}")
                    return IngestionOutcome.skipped("記事が見つかりません", article_id)

                current = [(image.image_id, image.image_url) for image in article.images]
                if current == images:
                    logger.info(f"Image change event for {article_id} has no effect")
                    return IngestionOutcome.applied(article_id, "変更なし")

                article.replace_images(images)
                await article_crud.save(session, article)
                await session.commit()
        except (ConcurrentModificationError, DatabaseError):
            raise
        except ValidationError as e:
            logger.warning(f"Dropping image change event for {article_id}: {e.message}")
            return IngestionOutcome.dropped(e.message, article_id)
        except Exception as e:
            # 想定外の失敗でパーティションを止めない
            logger.error(f"Unexpected error handling image change event for {article_id}: {str(e)}", exc_info=True)
            return IngestionOutcome.dropped(f"予期しないエラー: {str(e)}", article_id)

        logger.info(f"Replaced images of article {article_id} ({len(images)} images)")
        return IngestionOutcome.applied(article_id)

    def _valid_images(self, article_id: str, images: Sequence[ImageChange]) -> List[Tuple[str, str]]:
        valid = []
        for image in images:
            if not image.image_id or not image.image_id.strip() or not image.image_url or not image.image_url.strip():
                logger.warning(f"Ignoring image without id or url for article {article_id}: {image!r}")
                continue
            if not is_acceptable_url(image.image_url):
                logger.warning(f"Ignoring image with unsupported url for article {article_id}: {image.image_url}")
                continue
            valid.append((image.image_id, image.image_url))
        return valid
