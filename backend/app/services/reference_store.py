"""
掲示板・キーワードの参照データストア

読み取り側はロックを取らず、常に完成済みのスナップショットを参照する。
更新は新しいスナップショットを組み立ててから参照を差し替える。
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.core.logging import get_logger
from app.crud.reference import reference_crud

logger = get_logger(__name__)


@dataclass(frozen=True)
class BoardRef:
    id: int
    name: str
    description: Optional[str] = None
    display_order: Optional[int] = None


@dataclass(frozen=True)
class KeywordRef:
    id: int
    name: str
    board_id: Optional[int] = None

    @property
    def common(self) -> bool:
        return self.board_id is None

    def is_usable_in(self, board_id: int) -> bool:
        return self.board_id is None or self.board_id == board_id


@dataclass(frozen=True)
class ReferenceSnapshot:
    version: int = 0
    boards: Tuple[BoardRef, ...] = ()
    keywords: Tuple[KeywordRef, ...] = ()
    loaded_at: Optional[datetime] = None
    boards_by_id: Dict[int, BoardRef] = field(default_factory=dict)
    boards_by_name: Dict[str, BoardRef] = field(default_factory=dict)
    keywords_by_id: Dict[int, KeywordRef] = field(default_factory=dict)

    @classmethod
    def build(cls, version: int, boards, keywords) -> "ReferenceSnapshot":
        boards = tuple(boards)
        keywords = tuple(keywords)
        return cls(
            version=version,
            boards=boards,
            keywords=keywords,
            loaded_at=utc_now(),
            boards_by_id={b.id: b for b in boards},
            boards_by_name={b.name: b for b in boards},
            keywords_by_id={k.id: k for k in keywords},
        )


class ReferenceStore:
    def __init__(self):
        self._snapshot = ReferenceSnapshot()
        self._refresh_lock = asyncio.Lock()

    @property
    def snapshot(self) -> ReferenceSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def boards(self) -> Tuple[BoardRef, ...]:
        return self._snapshot.boards

    def keywords(self) -> Tuple[KeywordRef, ...]:
        return self._snapshot.keywords

    def board(self, board_id: int) -> Optional[BoardRef]:
        return self._snapshot.boards_by_id.get(board_id)

    def board_by_name(self, name: str) -> Optional[BoardRef]:
        return self._snapshot.boards_by_name.get(name)

    def keyword(self, keyword_id: int) -> Optional[KeywordRef]:
        return self._snapshot.keywords_by_id.get(keyword_id)

    def keywords_for_board(self, board_id: int) -> Tuple[KeywordRef, ...]:
        """共通キーワードと指定掲示板専用キーワード"""
        return tuple(k for k in self._snapshot.keywords if k.is_usable_in(board_id))

    async def refresh(self, session_factory: Callable[[], AsyncSession]) -> ReferenceSnapshot:
        """DBから読み直して差し替える（同時に走る更新は直列化）"""
        async with self._refresh_lock:
            async with session_factory() as session:
                boards = await reference_crud.get_active_boards(session)
                keywords = await reference_crud.get_active_keywords(session)

            snapshot = ReferenceSnapshot.build(
                version=self._snapshot.version + 1,
                boards=(
                    BoardRef(id=b.id, name=b.name, description=b.description, display_order=b.display_order)
                    for b in boards
                ),
                keywords=(KeywordRef(id=k.id, name=k.name, board_id=k.board_id) for k in keywords),
            )
            self._snapshot = snapshot

        logger.info(
            f"Reference data refreshed: version={snapshot.version}, "
            f"boards={len(snapshot.boards)}, keywords={len(snapshot.keywords)}"
        )
        return snapshot


reference_store = ReferenceStore()
