"""
Cursor のテスト
"""
import base64
import json
import pytest
from datetime import datetime, timedelta, timezone

from app.core.exceptions import InvalidCursorError
from app.core.pagination import Cursor


def _token(data) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


class TestCursor:
    """カーソルのテストクラス"""

    def test_decode_returns_encoded_position(self):
        cursor = Cursor(created_at=datetime(2025, 3, 1, 12, 30, 0, 123456), id="article-0000000001")

        decoded = Cursor.decode(cursor.encode())

        assert decoded == cursor

    def test_encoded_token_is_url_safe(self):
        token = Cursor(created_at=datetime(2025, 3, 1), id="article-0000000001").encode()

        assert "=" not in token
        assert "+" not in token
        assert "/" not in token

    def test_of_normalizes_aware_datetime_to_naive_utc(self):
        aware = datetime(2025, 3, 1, 21, 0, tzinfo=timezone(timedelta(hours=9)))

        cursor = Cursor.of(aware, "article-0000000001")

        assert cursor.created_at == datetime(2025, 3, 1, 12, 0)
        assert cursor.created_at.tzinfo is None

    @pytest.mark.parametrize("token", ["", "   ", "not base64 !!", _token(["a", "b"])])
    def test_decode_rejects_garbage(self, token):
        with pytest.raises(InvalidCursorError):
            Cursor.decode(token)

    def test_decode_rejects_missing_id(self):
        with pytest.raises(InvalidCursorError):
            Cursor.decode(_token({"createdAt": "2025-03-01T00:00:00"}))

    def test_decode_rejects_bad_datetime(self):
        with pytest.raises(InvalidCursorError):
            Cursor.decode(_token({"createdAt": "yesterday", "id": "article-0000000001"}))

    def test_of_rejects_missing_timestamp(self):
        with pytest.raises(InvalidCursorError):
            Cursor.of(None, "article-0000000001")

    @pytest.mark.parametrize("cursor_id", [None, "", "short", "x" * 51])
    def test_of_rejects_invalid_id(self, cursor_id):
        with pytest.raises(InvalidCursorError):
            Cursor.of(datetime(2025, 3, 1), cursor_id)
