"""
記事ライフサイクルイベントの発行

発行はベストエフォート。失敗はログに残すだけで呼び出し元には伝えない。
"""
from typing import Dict, Iterable, Optional

from confluent_kafka import Producer

from app.core.config import settings
from app.core.logging import get_logger
from app.schemas.events import CamelModel

logger = get_logger(__name__)


class EventPublisher:
    async def publish(self, event: CamelModel) -> None:
        raise NotImplementedError

    async def publish_all(self, events: Iterable[CamelModel]) -> None:
        for event in events:
            try:
                await self.publish(event)
            except Exception as e:
                logger.error(f"Failed to publish {getattr(event, 'event_type', type(event).__name__)}: {str(e)}")

    async def close(self) -> None:
        return None


class LoggingEventPublisher(EventPublisher):
    """Kafka 無効時に使う（イベントをログに出すだけで保持はしない）"""

    async def publish(self, event: CamelModel) -> None:
        logger.info(f"Domain event: {event.model_dump_json(by_alias=True)}")


class KafkaEventPublisher(EventPublisher):
    def __init__(
        self,
        bootstrap_servers: str = settings.KAFKA_BOOTSTRAP_SERVERS,
        topics: Optional[Dict[str, str]] = None,
        producer: Optional[Producer] = None
    ):
        if topics is None:
            topics = {
                "article.created": settings.KAFKA_ARTICLE_CREATED_TOPIC,
                "article.deleted": settings.KAFKA_ARTICLE_DELETED_TOPIC,
            }
        self.topics = topics
        self._producer = producer or Producer({
            "bootstrap.servers": bootstrap_servers,
            "acks": "all",
            "enable.idempotence": True,
            "retries": 3,
            "retry.backoff.ms": 100,
        })

    def _delivery_callback(self, err, msg) -> None:
        if err:
            logger.error(f"Event delivery failed: topic={msg.topic()} error={err}")
        else:
            logger.debug(f"Event delivered: topic={msg.topic()} partition={msg.partition()} offset={msg.offset()}")

    async def publish(self, event: CamelModel) -> None:
        event_type = getattr(event, "event_type", None)
        topic = self.topics.get(event_type)
        if topic is None:
            logger.warning(f"No topic configured for event type {event_type}")
            return

        key = getattr(event, "article_id", None)
        self._producer.produce(
            topic,
            key=key.encode("utf-8") if key else None,
            value=event.model_dump_json(by_alias=True).encode("utf-8"),
            on_delivery=self._delivery_callback,
        )
        # 配信コールバックを処理する
        self._producer.poll(0)

    async def close(self) -> None:
        remaining = self._producer.flush(10)
        if remaining:
            logger.warning(f"{remaining} events were not delivered before shutdown")
        logger.info("Kafka producer closed")


def create_publisher() -> EventPublisher:
    if settings.KAFKA_ENABLED:
        return KafkaEventPublisher()
    return LoggingEventPublisher()
