"""
カーソルページネーション

カーソルは最後に返した行のソートキー (created_at, id) を保持する。
外部には URL セーフな base64 でエンコードした JSON として渡す。
"""
import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from app.core.clock import to_naive_utc
from app.core.exceptions import InvalidCursorError

T = TypeVar("T")

CURSOR_ID_MIN_LENGTH = 10
CURSOR_ID_MAX_LENGTH = 50


@dataclass(frozen=True)
class Cursor:
    created_at: datetime
    id: str

    def encode(self) -> str:
        payload = json.dumps(
            {"createdAt": self.created_at.isoformat(), "id": self.id},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "Cursor":
        if not token or not token.strip():
            raise InvalidCursorError("空のカーソルです", token)
        try:
            padded = token + "=" * (-len(token) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise InvalidCursorError("デコードできません", token) from e

        if not isinstance(data, dict) or "createdAt" not in data or "id" not in data:
            raise InvalidCursorError("必須項目がありません", token)
        if not isinstance(data["createdAt"], str):
            raise InvalidCursorError("createdAt が不正です", token)
        return cls.of(_parse_datetime(data["createdAt"], token), data["id"])

    @classmethod
    def of(cls, created_at: Optional[datetime], cursor_id: Optional[str]) -> "Cursor":
        """明示的な (created_at, id) の組からカーソルを作る"""
        if created_at is None:
            raise InvalidCursorError("created_at が指定されていません", cursor_id)
        if not isinstance(cursor_id, str) or not cursor_id.strip():
            raise InvalidCursorError("id が指定されていません", cursor_id)
        if len(cursor_id) < CURSOR_ID_MIN_LENGTH or len(cursor_id) > CURSOR_ID_MAX_LENGTH:
            raise InvalidCursorError("id の長さが不正です", cursor_id)
        return cls(created_at=to_naive_utc(created_at), id=cursor_id)


@dataclass
class CursorPage(Generic[T]):
    items: List[T] = field(default_factory=list)
    next_cursor: Optional[Cursor] = None
    has_next: bool = False
    size: int = 0


def _parse_datetime(value: str, token: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise InvalidCursorError("createdAt が日時形式ではありません", token) from e
