"""Wire the concrete stores into the tiering core from a Config."""

from dataclasses import dataclass
from datetime import timedelta

import redis

from src.tiering.archival import ArchivalPipeline
from src.tiering.base_job import store_retry_config
from src.tiering.cleanup import CleanupReconciler
from src.tiering.events import PrometheusEventSink
from src.tiering.router import ReadRouter
from src.tiering.tier_state import TierStateAccess
from src.utils.config import Config
from src.utils.logging import get_logger

from .minio import MinioColdStore
from .postgres import PostgresTierStateStore
from .redis import RedisDeadLetterSink, RedisHotStore, connect_redis

logger = get_logger(__name__)


@dataclass
class TieringServices:
    config: Config
    redis_client: redis.Redis
    hot: RedisHotStore
    cold: MinioColdStore
    tier_state_store: PostgresTierStateStore
    dead_letters: RedisDeadLetterSink
    router: ReadRouter
    archival: ArchivalPipeline
    cleanup: CleanupReconciler

    @property
    def cutoff_age(self) -> timedelta:
        return timedelta(days=self.config.tiering.cutoff_days)

    def close(self) -> None:
        self.router.close()
        self.archival.close()
        self.cleanup.close()
        self.tier_state_store.close()
        self.redis_client.close()


def build_services(config: Config) -> TieringServices:
    redis_client = connect_redis(
        host=config.redis.host,
        port=config.redis.port,
        db=config.redis.db,
        password=config.redis.password,
        socket_timeout=config.redis.socket_timeout,
        socket_connect_timeout=config.redis.socket_connect_timeout,
    )
    hot = RedisHotStore(redis_client)
    dead_letters = RedisDeadLetterSink(
        redis_client, max_size=config.redis.dead_letter_max_size
    )
    cold = MinioColdStore(
        endpoint=config.minio.endpoint,
        access_key=config.minio.access_key,
        secret_key=config.minio.secret_key,
        bucket=config.minio.bucket,
        secure=config.minio.secure,
        timeout_seconds=config.tiering.cold_read_timeout_seconds,
    )
    tier_state_store = PostgresTierStateStore(
        host=config.postgres.host,
        port=config.postgres.port,
        user=config.postgres.user,
        password=config.postgres.password,
        database=config.postgres.database,
        min_connections=config.postgres.min_connections,
        max_connections=config.postgres.max_connections,
    )
    tier_state = TierStateAccess(tier_state_store)
    events = PrometheusEventSink()

    tiering = config.tiering
    retry_config = store_retry_config(
        max_attempts=tiering.retry_max_attempts,
        initial_delay_ms=tiering.retry_initial_delay_ms,
        max_delay_ms=tiering.retry_max_delay_ms,
    )

    router = ReadRouter(
        hot,
        cold,
        tier_state,
        events=events,
        dead_letters=dead_letters,
        hot_timeout_seconds=tiering.hot_read_timeout_seconds,
        cold_timeout_seconds=tiering.cold_read_timeout_seconds,
    )
    archival = ArchivalPipeline(
        hot,
        cold,
        tier_state,
        dead_letters,
        events=events,
        retry_config=retry_config,
        page_size=tiering.scan_page_size,
        max_workers=tiering.max_workers,
        max_payload_bytes=tiering.max_payload_bytes,
    )
    cleanup = CleanupReconciler(
        hot,
        cold,
        tier_state,
        dead_letters,
        events=events,
        retry_config=retry_config,
        page_size=tiering.scan_page_size,
        max_workers=tiering.max_workers,
    )
    logger.info("Tiering services initialized")

    return TieringServices(
        config=config,
        redis_client=redis_client,
        hot=hot,
        cold=cold,
        tier_state_store=tier_state_store,
        dead_letters=dead_letters,
        router=router,
        archival=archival,
        cleanup=cleanup,
    )
