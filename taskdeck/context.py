from __future__ import annotations

from dataclasses import dataclass

from taskdeck.config import StoreConfig, load_config
from taskdeck.observability import get_json_logger
from taskdeck.storage import InMemoryMedium, JsonFileMedium, KeyValueMedium, VersionedKeyValueStore
from taskdeck.tasks import TaskRepository


@dataclass(slots=True)
class AppContext:
    config: StoreConfig
    medium: KeyValueMedium
    store: VersionedKeyValueStore
    tasks: TaskRepository


def create_medium(config: StoreConfig) -> KeyValueMedium:
    if config.backend == "memory":
        return InMemoryMedium(capacity=config.capacity)
    if config.backend == "file":
        return JsonFileMedium(config.data_file, capacity=config.capacity)
    if config.backend == "redis":
        from taskdeck.storage.redis_adapter import RedisMedium  # defer: redis backend only

        return RedisMedium(config.redis_url)
    raise ValueError(f"unknown storage backend: {config.backend!r}")


def create_context(
    config: StoreConfig | None = None,
    *,
    medium: KeyValueMedium | None = None,
) -> AppContext:
    """Wire medium, store and repository once; callers pass the context along."""
    cfg = config or load_config()
    med = medium if medium is not None else create_medium(cfg)
    store = VersionedKeyValueStore(med, cfg.app_name, cfg.schema_version)
    tasks = TaskRepository(store)
    get_json_logger("taskdeck").debug(
        "context ready",
        extra={
            "event": "context_ready",
            "app_name": cfg.app_name,
            "attributes": {"backend": cfg.backend, "tasks": len(tasks)},
        },
    )
    return AppContext(config=cfg, medium=med, store=store, tasks=tasks)


__all__ = ["AppContext", "create_context", "create_medium"]
