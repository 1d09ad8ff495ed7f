from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Optional


class CamelModel(BaseModel):
    """外部メッセージ用（camelCaseのJSONと相互変換）"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# 受信: 画像変更イベント
class ImageChange(CamelModel):
    image_id: Optional[str] = None
    image_url: Optional[str] = None
    sequence: Optional[int] = None


class ImagesChangedEvent(CamelModel):
    """画像変更イベント（images が空配列なら全削除、値があれば全置換）"""
    reference_id: Optional[str] = None
    images: Optional[List[ImageChange]] = None


class LegacyImageChange(ImageChange):
    """旧形式（配列の各要素が referenceId を持つ）"""
    reference_id: Optional[str] = None


# 発行: 記事ライフサイクルイベント
class ArticleCreatedEvent(CamelModel):
    event_type: str = "article.created"
    article_id: str
    title: str
    writer_id: str
    board_id: int
    occurred_at: datetime


class ArticleDeletedEvent(CamelModel):
    event_type: str = "article.deleted"
    article_id: str
    title: str
    writer_id: str
    reason: Optional[str] = None
    occurred_at: datetime
