import re
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import String, Text, DateTime, Integer, ForeignKey, Enum, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates, reconstructor

from app.core.clock import utc_now
from app.core.exceptions import ValidationError, InvalidStatusTransitionError
from app.db.base import Base
from app.models.enums import ArticleKind, ArticleStatus
from app.models.keyword import Keyword, KeywordMapping
from app.schemas.events import ArticleCreatedEvent, ArticleDeletedEvent


ID_MIN_LENGTH = 10
ID_MAX_LENGTH = 50
TITLE_MAX_LENGTH = 200
WRITER_ID_MAX_LENGTH = 50

_HTML_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")


class ArticleImage(Base):
    """記事画像（(article_id, sequence) で識別、sequence は1始まりの連番）"""
    __tablename__ = "article_images"

    article_id: Mapped[str] = mapped_column(ForeignKey("articles.article_id"), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True)
    image_id: Mapped[str] = mapped_column(String(100))
    image_url: Mapped[str] = mapped_column(String(500))


class Article(Base):
    """
    記事集約（通常記事・イベント・お知らせを kind で区別する単一テーブル）

    画像とキーワード対応はこの集約が所有し、変更は必ずここのメソッドを通す。
    Keyword と Board は ID で参照するだけで所有しない。
    """
    __tablename__ = "articles"
    __table_args__ = (
        Index("idx_status_created_id", "status", "created_at", "article_id"),
        Index("idx_board_status_created", "board_id", "status", "created_at"),
        Index("idx_writer_status_created", "writer_id", "status", "created_at"),
        Index("idx_type_status_created", "article_type", "status", "created_at"),
        Index("idx_event_status_dates", "article_type", "status", "event_start_date", "event_end_date"),
    )

    id: Mapped[str] = mapped_column("article_id", String(ID_MAX_LENGTH), primary_key=True)
    kind: Mapped[ArticleKind] = mapped_column("article_type", Enum(ArticleKind), default=ArticleKind.REGULAR)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH))
    content: Mapped[str] = mapped_column("contents", Text)
    writer_id: Mapped[str] = mapped_column(String(WRITER_ID_MAX_LENGTH))
    status: Mapped[ArticleStatus] = mapped_column(Enum(ArticleStatus), default=ArticleStatus.ACTIVE)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    board_id: Mapped[int] = mapped_column(ForeignKey("boards.board_id"))
    first_image_url: Mapped[Optional[str]] = mapped_column(String(500))  # 代表画像（sequence=1）
    event_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    event_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    images: Mapped[List[ArticleImage]] = relationship(
        order_by=ArticleImage.sequence,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    keyword_mappings: Mapped[List[KeywordMapping]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        for field in ("id", "title", "content", "writer_id"):
            if getattr(self, field) is None:
                raise ValidationError(f"{field} は必須です", details={"field": field})
        if self.kind is None:
            self.kind = ArticleKind.REGULAR
        if self.status is None:
            self.status = ArticleStatus.ACTIVE
        if self.view_count is None:
            self.view_count = 0
        self._domain_events = []

    @reconstructor
    def _init_on_load(self):
        self._domain_events = []

    @classmethod
    def create(
        cls,
        kind: ArticleKind,
        id: str,
        title: str,
        content: str,
        writer_id: str,
        board_id: int,
        event_start_date: Optional[datetime] = None,
        event_end_date: Optional[datetime] = None,
    ) -> "Article":
        """種別に応じて検証した上で新しい記事を生成する"""
        if kind == ArticleKind.EVENT:
            _check_event_period(event_start_date, event_end_date)
        elif kind in (ArticleKind.REGULAR, ArticleKind.NOTICE):
            if event_start_date is not None or event_end_date is not None:
                raise ValidationError(
                    "イベント期間はイベント記事にのみ設定できます",
                    details={"kind": kind.value},
                )
        else:
            raise ValidationError(f"未対応の記事種別です: {kind}")

        now = utc_now()
        article = cls(
            id=id,
            kind=kind,
            title=title,
            content=content,
            writer_id=writer_id,
            board_id=board_id,
            status=ArticleStatus.ACTIVE,
            view_count=0,
            event_start_date=event_start_date,
            event_end_date=event_end_date,
            created_at=now,
            updated_at=now,
        )
        article._register_event(
            ArticleCreatedEvent(
                article_id=article.id,
                title=article.title,
                writer_id=article.writer_id,
                board_id=board_id,
                occurred_at=now,
            )
        )
        return article

    # === 値の検証 ===

    @validates("id")
    def _validate_id(self, key, value):
        if value is None or not str(value).strip():
            raise ValidationError("記事IDは必須です")
        if len(value) < ID_MIN_LENGTH or len(value) > ID_MAX_LENGTH:
            raise ValidationError(
                f"記事IDの長さは{ID_MIN_LENGTH}〜{ID_MAX_LENGTH}文字である必要があります",
                details={"id": value},
            )
        current = self.__dict__.get("id")
        if current is not None and current != value:
            raise ValidationError("記事IDは変更できません", details={"id": current})
        return value

    @validates("title")
    def _validate_title(self, key, value):
        if value is None or not value.strip():
            raise ValidationError("タイトルが必要です")
        sanitized = _WHITESPACE.sub(" ", _HTML_TAG.sub("", value)).strip()
        if not sanitized or len(sanitized) > TITLE_MAX_LENGTH:
            raise ValidationError(
                f"タイトルは1〜{TITLE_MAX_LENGTH}文字である必要があります",
                details={"length": len(sanitized)},
            )
        return sanitized

    @validates("content")
    def _validate_content(self, key, value):
        if value is None or not value.strip():
            raise ValidationError("本文が必要です")
        return value

    @validates("writer_id")
    def _validate_writer_id(self, key, value):
        if value is None or not value.strip():
            raise ValidationError("作成者IDが必要です")
        if len(value) > WRITER_ID_MAX_LENGTH:
            raise ValidationError(f"作成者IDは{WRITER_ID_MAX_LENGTH}文字以内である必要があります")
        return value

    # === 画像 ===

    def replace_images(self, new_images: Iterable[Tuple[str, str]]) -> None:
        """
        画像を全置換する

        既存の画像をすべて破棄し、呼び出し元が渡した順に sequence 1..N を振り直す。
        空のリストは「全画像削除」を意味する。
        """
        self.images.clear()
        self.first_image_url = None

        for sequence, (image_id, image_url) in enumerate(new_images, start=1):
            self.images.append(
                ArticleImage(
                    article_id=self.id,
                    sequence=sequence,
                    image_id=image_id,
                    image_url=image_url,
                )
            )

        if self.images:
            self.first_image_url = self.images[0].image_url
        self._touch()

    # === キーワード ===

    def keyword_ids(self) -> List[int]:
        return [mapping.keyword_id for mapping in self.keyword_mappings]

    def add_keywords(self, keywords: Iterable[Keyword]) -> None:
        """未登録のキーワードだけを対応付け、それぞれの usage_count を1増やす"""
        mapped = set(self.keyword_ids())
        added = False

        for keyword in keywords:
            if keyword is None:
                continue
            if keyword.id is None:
                raise ValidationError("保存されていないキーワードは付与できません", details={"name": keyword.name})
            if keyword.id in mapped:
                continue

            self.keyword_mappings.append(
                KeywordMapping(keyword_id=keyword.id, article_id=self.id, keyword=keyword)
            )
            keyword.increment_usage_count()
            mapped.add(keyword.id)
            added = True

        if added:
            self._touch()

    def remove_keywords(self, keywords: Iterable[Keyword]) -> None:
        """指定キーワードとの対応を外し、外した分だけ usage_count を1減らす"""
        targets = {keyword.id for keyword in keywords if keyword is not None}
        removed = False

        for mapping in list(self.keyword_mappings):
            if mapping.keyword_id in targets:
                mapping.keyword.decrement_usage_count()
                self.keyword_mappings.remove(mapping)
                removed = True

        if removed:
            self._touch()

    def replace_keywords(self, new_keywords: Iterable[Keyword]) -> None:
        """キーワードを全置換する（既存をすべて外してから追加）"""
        for mapping in self.keyword_mappings:
            mapping.keyword.decrement_usage_count()
        self.keyword_mappings.clear()
        self.add_keywords(new_keywords)
        self._touch()

    # === 本文・所属・期間 ===

    def update_content(self, title: Optional[str] = None, content: Optional[str] = None) -> None:
        if title is not None:
            self.title = title
        if content is not None:
            self.content = content
        self._touch()

    def change_board(self, board_id: int) -> None:
        if board_id != self.board_id:
            self.board_id = board_id
            self._touch()

    def change_event_period(self, start: datetime, end: datetime) -> None:
        if not self.has_event_period():
            raise ValidationError(
                "イベント期間はイベント記事にのみ設定できます",
                details={"kind": self.kind.value},
            )
        _check_event_period(start, end)
        self.event_start_date = start
        self.event_end_date = end
        self._touch()

    # === 状態 ===

    def delete(self, reason: Optional[str] = None) -> bool:
        """
        論理削除

        既に削除済みなら何もしない（イベントも再発行しない）。
        画像・キーワードは監査用に残し、定期クリーンアップで物理削除する。
        """
        if self.status == ArticleStatus.DELETED:
            return False

        self.status = ArticleStatus.DELETED
        self._touch()
        self._register_event(
            ArticleDeletedEvent(
                article_id=self.id,
                title=self.title,
                writer_id=self.writer_id,
                reason=reason,
                occurred_at=self.updated_at,
            )
        )
        return True

    def block(self) -> None:
        if self.status == ArticleStatus.DELETED:
            raise InvalidStatusTransitionError(self.status.value, ArticleStatus.BLOCKED.value)
        self.status = ArticleStatus.BLOCKED
        self._touch()

    def activate(self) -> None:
        if self.status == ArticleStatus.DELETED:
            raise InvalidStatusTransitionError(self.status.value, ArticleStatus.ACTIVE.value)
        self.status = ArticleStatus.ACTIVE
        self._touch()

    def increment_view_count(self) -> None:
        self.view_count = (self.view_count or 0) + 1

    def is_written_by(self, user_id: Optional[str]) -> bool:
        return user_id is not None and self.writer_id == user_id

    def is_active(self) -> bool:
        return self.status == ArticleStatus.ACTIVE

    def is_deleted(self) -> bool:
        return self.status == ArticleStatus.DELETED

    def is_blocked(self) -> bool:
        return self.status == ArticleStatus.BLOCKED

    def has_event_period(self) -> bool:
        return self.kind == ArticleKind.EVENT

    # === ドメインイベント ===

    def _register_event(self, event) -> None:
        self._domain_events.append(event)

    def pull_domain_events(self) -> list:
        """溜まったドメインイベントを取り出してクリアする"""
        events, self._domain_events = self._domain_events, []
        return events

    def _touch(self) -> None:
        now = utc_now()
        if self.created_at is not None and now < self.created_at:
            now = self.created_at
        self.updated_at = now

    def __repr__(self) -> str:
        return f"Article(id={self.id!r}, kind={self.kind}, status={self.status}, version={self.version})"


def _check_event_period(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is None or end is None:
        raise ValidationError("イベントの開始日時と終了日時は両方必要です")
    if end < start:
        raise ValidationError(
            "イベントの終了日時は開始日時以降である必要があります",
            details={"event_start_date": start.isoformat(), "event_end_date": end.isoformat()},
        )
