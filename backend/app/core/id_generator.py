"""
Snowflake方式のID生成器

41bitのミリ秒タイムスタンプ + 10bitのノードID + 12bitのシーケンスで
時系列順に並ぶ一意なIDを生成する。文字列比較と数値比較の順序を一致させるため
20桁のゼロ埋め10進文字列として返す。
"""
import threading
import time
from datetime import datetime, UTC

from app.core.config import settings


# 2024-01-01T00:00:00Z
DEFAULT_EPOCH_MS = int(datetime(2024, 1, 1, tzinfo=UTC).timestamp() * 1000)

NODE_ID_BITS = 10
SEQUENCE_BITS = 12
MAX_NODE_ID = (1 << NODE_ID_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
ID_WIDTH = 20


class SnowflakeIdGenerator:
    """スレッドセーフな時系列ID生成器"""

    def __init__(self, node_id: int, epoch_ms: int = DEFAULT_EPOCH_MS, clock=None):
        if node_id < 0 or node_id > MAX_NODE_ID:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE_ID}")
        self.node_id = node_id
        self.epoch_ms = epoch_ms
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._lock = threading.Lock()
        self._last_timestamp = -1
        self._sequence = 0

    def _wait_next_millis(self, last_timestamp: int) -> int:
        timestamp = self._clock()
        while timestamp <= last_timestamp:
            time.sleep(0.0001)
            timestamp = self._clock()
        return timestamp

    def next_int(self) -> int:
        with self._lock:
            timestamp = self._clock()
            # 時計が巻き戻った場合は直前のタイムスタンプを使い続ける
            if timestamp < self._last_timestamp:
                timestamp = self._last_timestamp

            if timestamp == self._last_timestamp:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    timestamp = self._wait_next_millis(self._last_timestamp)
            else:
                self._sequence = 0

            self._last_timestamp = timestamp
            return (
                ((timestamp - self.epoch_ms) << (NODE_ID_BITS + SEQUENCE_BITS))
                | (self.node_id << SEQUENCE_BITS)
                | self._sequence
            )

    def generate(self) -> str:
        """新しいIDを文字列で生成"""
        return f"{self.next_int():0{ID_WIDTH}d}"


# シングルトンインスタンス
id_generator = SnowflakeIdGenerator(node_id=settings.SNOWFLAKE_NODE_ID)
