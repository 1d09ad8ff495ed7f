import enum


class ArticleKind(enum.Enum):
    REGULAR = "REGULAR"
    EVENT = "EVENT"
    NOTICE = "NOTICE"


class ArticleStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    DELETED = "DELETED"
