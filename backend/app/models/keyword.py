from sqlalchemy import String, Boolean, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional

from app.db.base import Base


class Keyword(Base):
    """
    キーワード

    board_id が NULL の場合は全掲示板で使える共通キーワード、
    指定されている場合はその掲示板専用のキーワード。
    """
    __tablename__ = "keywords"
    __table_args__ = (
        UniqueConstraint("keyword_name", "board_id", name="uk_keyword_board"),
    )

    id: Mapped[int] = mapped_column("keyword_id", Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column("keyword_name", String(50), index=True)
    board_id: Mapped[Optional[int]] = mapped_column(ForeignKey("boards.board_id"), index=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)  # 参照している記事数
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def is_common(self) -> bool:
        return self.board_id is None

    def belongs_to_board(self, board_id: int) -> bool:
        return self.board_id is not None and self.board_id == board_id

    def is_usable_in(self, board_id: int) -> bool:
        """指定掲示板の記事に付与できるか"""
        return self.is_common() or self.belongs_to_board(board_id)

    def increment_usage_count(self) -> None:
        self.usage_count = (self.usage_count or 0) + 1

    def decrement_usage_count(self) -> None:
        self.usage_count = (self.usage_count or 0) - 1


class KeywordMapping(Base):
    """記事とキーワードの対応（この行の存在が usage_count の唯一の根拠）"""
    __tablename__ = "keyword_mapping_table"

    keyword_id: Mapped[int] = mapped_column(ForeignKey("keywords.keyword_id"), primary_key=True)
    article_id: Mapped[str] = mapped_column(ForeignKey("articles.article_id"), primary_key=True, index=True)

    # 一方向の参照のみ（Keyword 側から記事への参照は持たない）
    keyword: Mapped["Keyword"] = relationship("Keyword", lazy="selectin")
