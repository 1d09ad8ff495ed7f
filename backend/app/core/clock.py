from datetime import datetime, UTC


def utc_now() -> datetime:
    """現在のUTC時刻（タイムゾーン情報なし）"""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """タイムゾーン付き日時をUTCのnaive日時に正規化"""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
