from typing import Any, Dict, Optional


class ArticleServerException(Exception):
    """記事サーバーアプリケーションの基底例外クラス"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(ArticleServerException):
    """バリデーションエラー"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = "VALIDATION_ERROR"
    ):
        super().__init__(message=message, details=details, error_code=error_code)


class NotFoundError(ArticleServerException):
    """リソースが見つからないエラー"""
    pass


class AuthorizationError(ArticleServerException):
    """認可エラー"""
    pass


class DatabaseError(ArticleServerException):
    """データベースエラー"""
    pass


# 具体的な例外クラス
class ArticleNotFoundError(NotFoundError):
    """記事が見つからないエラー"""

    def __init__(self, article_id: Optional[str] = None):
        if article_id:
            message = f"記事ID '{article_id}' が見つかりません"
            details = {"article_id": article_id}
        else:
            message = "記事が見つかりません"
            details = {}

        super().__init__(message=message, details=details, error_code="ARTICLE_NOT_FOUND")


class BoardNotFoundError(NotFoundError):
    """掲示板が見つからないエラー"""

    def __init__(self, board_id: Optional[int] = None, board_name: Optional[str] = None):
        if board_id is not None:
            message = f"掲示板ID '{board_id}' が見つかりません"
            details = {"board_id": board_id}
        elif board_name:
            message = f"掲示板名 '{board_name}' が見つかりません"
            details = {"board_name": board_name}
        else:
            message = "掲示板が見つかりません"
            details = {}

        super().__init__(message=message, details=details, error_code="BOARD_NOT_FOUND")


class KeywordNotFoundError(NotFoundError):
    """キーワードが見つからないエラー"""

    def __init__(self, keyword_ids: list):
        message = f"キーワードID {sorted(keyword_ids)} が見つかりません"
        details = {"keyword_ids": sorted(keyword_ids)}
        super().__init__(message=message, details=details, error_code="KEYWORD_NOT_FOUND")


class ArticleBlockedError(AuthorizationError):
    """ブロックされた記事へのアクセスエラー"""

    def __init__(self, article_id: str):
        message = f"記事ID '{article_id}' はブロックされています"
        details = {"article_id": article_id}
        super().__init__(message=message, details=details, error_code="ARTICLE_IS_BLOCKED")


class PermissionDeniedError(AuthorizationError):
    """権限拒否エラー"""
    def __init__(self, message: str = "権限が拒否されました"):
        super().__init__(message=message, error_code="PERMISSION_DENIED")


class ConcurrentModificationError(ArticleServerException):
    """楽観的ロックの競合エラー（呼び出し元で再試行すること）"""

    def __init__(self, article_id: Optional[str] = None, version: Optional[int] = None):
        message = f"記事ID '{article_id}' は他の処理によって更新されました"
        details = {"article_id": article_id, "version": version}
        super().__init__(message=message, details=details, error_code="CONCURRENT_MODIFICATION")


class InvalidCursorError(ValidationError):
    """ページネーションカーソルが無効なエラー"""

    def __init__(self, reason: str, cursor: Any = None):
        message = f"カーソルが無効です: {reason}"
        details = {"reason": reason, "cursor": cursor}
        super().__init__(message=message, details=details, error_code="INVALID_CURSOR")


class MalformedEventError(ArticleServerException):
    """受信イベントの構造が壊れているエラー"""

    def __init__(self, reason: str, payload: Any = None):
        message = f"イベントの形式が不正です: {reason}"
        details = {"reason": reason, "payload": payload}
        super().__init__(message=message, details=details, error_code="MALFORMED_EVENT")


class InvalidParameterError(ValidationError):
    """無効なパラメータエラー"""
    def __init__(self, parameter: str, value: Any, reason: str):
        message = f"パラメータ '{parameter}' の値 '{value}' が無効です: {reason}"
        details = {"parameter": parameter, "value": value, "reason": reason}
        super().__init__(message=message, details=details, error_code="INVALID_PARAMETER")


class InvalidStatusTransitionError(ValidationError):
    """無効なステータス遷移エラー"""
    def __init__(self, current_status: str, target_status: str):
        message = f"ステータス '{current_status}' から '{target_status}' への遷移は無効です"
        details = {"current_status": current_status, "target_status": target_status}
        super().__init__(message=message, details=details, error_code="INVALID_STATUS_TRANSITION")


class DatabaseQueryError(DatabaseError):
    """データベースクエリ実行エラー"""
    def __init__(self, message: str = "Database query execution error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="DATABASE_QUERY_ERROR")


class DatabaseConnectionError(DatabaseError):
    """データベース接続エラー"""
    def __init__(self, message: str = "Database connection error"):
        super().__init__(message=message, error_code="DATABASE_CONNECTION_ERROR")
