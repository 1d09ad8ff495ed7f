from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """全モデル共通の宣言的ベースクラス"""
    pass
