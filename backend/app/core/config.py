from pydantic import ConfigDict
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    # 環境設定
    ENVIRONMENT: Literal["development", "testing", "production"] = "development"

    # アプリケーション設定
    APP_NAME: str = "記事サーバー"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # ロギング設定
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/article_server.log"

    # データベース設定
    DATABASE_URL: str = "sqlite+aiosqlite:///./articles.db"
    SQLALCHEMY_ECHO: bool = False
    TZ: str = "Asia/Tokyo"

    # CORS設定
    CORS_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # ページネーション設定
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # ID生成設定（Snowflake）
    SNOWFLAKE_NODE_ID: int = 1

    # 種別ごとに固定される掲示板
    EVENT_BOARD_NAME: str = "이벤트"
    NOTICE_BOARD_NAME: str = "공지사항"

    # Kafka設定
    KAFKA_ENABLED: bool = False
    KAFKA_BOOTSTRAP_SERVERS: str = "localhost:9092"
    KAFKA_GROUP_ID: str = "article-consumer-group"
    KAFKA_IMAGE_CHANGED_TOPIC: str = "post-image-changed"
    KAFKA_ARTICLE_CREATED_TOPIC: str = "article.created"
    KAFKA_ARTICLE_DELETED_TOPIC: str = "article.deleted"

    # スケジューラ設定
    SCHEDULER_ENABLED: bool = True
    CLEANUP_CRON: str = "15 4 * * *"
    CLEANUP_LOCK_AT_MOST_SECONDS: int = 540
    CLEANUP_LOCK_AT_LEAST_SECONDS: int = 60
    REFERENCE_REFRESH_HOURS: int = 24
    INSTANCE_NAME: str = "article-server"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )


settings = Settings()
