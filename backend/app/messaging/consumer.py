"""
画像変更トピックのコンシューマ

ハンドラが正常に戻ったメッセージだけオフセットをコミットする。
ハンドラが例外を投げた場合はコミットせずに同じオフセットへ戻し、再配信させる。
"""
import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from confluent_kafka import Consumer, KafkaError, TopicPartition

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[bytes], Awaitable[Any]]


class KafkaMessageConsumer:
    def __init__(
        self,
        topics: List[str],
        handler: Handler,
        bootstrap_servers: str = settings.KAFKA_BOOTSTRAP_SERVERS,
        group_id: str = settings.KAFKA_GROUP_ID,
        retry_backoff_seconds: float = 1.0,
        consumer: Optional[Consumer] = None
    ):
        self.topics = topics
        self.handler = handler
        self.retry_backoff_seconds = retry_backoff_seconds
        self._consumer = consumer or Consumer({
            "bootstrap.servers": bootstrap_servers,
            "group.id": group_id,
            "auto.offset.reset": "earliest",
            "enable.auto.commit": False,
        })
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._consumer.subscribe(self.topics)
        self._running = True
        self._task = asyncio.create_task(self.run())
        logger.info(f"Kafka consumer started: topics={self.topics}")

    async def run(self) -> None:
        while self._running:
            # poll はブロッキングなのでスレッドに逃がす
            msg = await asyncio.to_thread(self._consumer.poll, 1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() != KafkaError._PARTITION_EOF:
                    logger.error(f"Consumer error: {msg.error()}")
                continue
            await self.process(msg)

    async def process(self, msg) -> bool:
        """1件処理する（コミットしたら True）"""
        try:
            await self.handler(msg.value())
        except Exception as e:
            logger.warning(
                f"Handler failed for {msg.topic()}[{msg.partition()}]@{msg.offset()}, "
                f"will be redelivered: {str(e)}"
            )
            self._consumer.seek(TopicPartition(msg.topic(), msg.partition(), msg.offset()))
            await asyncio.sleep(self.retry_backoff_seconds)
            return False

        await asyncio.to_thread(self._consumer.commit, message=msg, asynchronous=False)
        return True

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=5)
            except asyncio.TimeoutError:
                self._task.cancel()
            self._task = None
        self._consumer.close()
        logger.info("Kafka consumer closed")
