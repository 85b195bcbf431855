"""Dependency injection factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI

from todolist.config import Config
from todolist.parsing.calendar import LocalCalendar
from todolist.parsing.quick_add import QuickAddParser
from todolist.query.engine import ListQueryEngine
from todolist.storage.base import TodoStorage
from todolist.storage.dual import ConflictAwareDualStorage
from todolist.storage.folder import FolderSnapshotStorage
from todolist.storage.local import LocalJsonStorage
from todolist.storage.watcher import ReplicaWatcher
from todolist.store.task_store import TaskStore
from todolist.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

# Global config instance for dependency injection
_config: Config | None = None

# Global singletons
_calendar: LocalCalendar | None = None
_store: TaskStore | None = None
_query_engine: ListQueryEngine | None = None
_connection_manager: ConnectionManager | None = None
_watcher: ReplicaWatcher | None = None
_broadcasts: set[asyncio.Task[int]] = set()


def get_config() -> Config:
    """Get or create Config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_calendar() -> LocalCalendar:
    """Get or create the calendar for the configured time zone."""
    global _calendar
    if _calendar is None:
        _calendar = LocalCalendar(get_config().timezone)
    return _calendar


def create_storage(config: Config) -> TodoStorage:
    """Local JSON storage, merged with the synced folder when one is configured."""
    local = LocalJsonStorage(config.local_path)
    if config.cloud_dir is None:
        return local
    return ConflictAwareDualStorage(local, FolderSnapshotStorage(config.cloud_dir))


def get_store() -> TaskStore:
    """Get or create TaskStore singleton."""
    global _store
    if _store is None:
        config = get_config()
        calendar = get_calendar()
        _store = TaskStore(
            storage=create_storage(config),
            parser=QuickAddParser(calendar, locale=config.locale),
            calendar=calendar,
            persist_delay=config.persist_delay_seconds,
        )
    return _store


def get_query_engine() -> ListQueryEngine:
    """Get or create ListQueryEngine singleton."""
    global _query_engine
    if _query_engine is None:
        _query_engine = ListQueryEngine(get_calendar())
    return _query_engine


def get_connection_manager() -> ConnectionManager:
    """Get or create ConnectionManager singleton."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager


def make_broadcast_listener(connection_manager: ConnectionManager) -> Callable[[str], None]:
    """Store listener that broadcasts every change to WebSocket clients."""

    def listener(reason: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(connection_manager.notify_change(reason))
        _broadcasts.add(task)
        task.add_done_callback(_broadcasts.discard)

    return listener


def start_replica_watcher(store: TaskStore) -> None:
    """Watch the synced folder and reload the store when it changes."""
    global _watcher
    config = get_config()
    if config.cloud_dir is None or not config.watch_cloud:
        return

    # Get the running event loop to schedule reloads from the watchdog thread
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.error("[Factory] No running event loop found")
        return

    def callback(event_type: str, file_name: str) -> None:
        logger.debug(f"[Factory] Replica {event_type}: {file_name}")
        loop.call_soon_threadsafe(store.schedule_reload)

    try:
        watcher = ReplicaWatcher(config.cloud_dir)
        watcher.set_callback(callback)
        watcher.start()
        _watcher = watcher
    except Exception as e:
        logger.error(f"[Factory] Failed to start watcher for {config.cloud_dir}: {e}", exc_info=True)


def stop_replica_watcher() -> None:
    """Stop the running file watcher."""
    global _watcher
    if _watcher is None:
        return
    try:
        _watcher.stop()
    except Exception as e:
        logger.error(f"[Factory] Failed to stop watcher: {e}")
    _watcher = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    store = get_store()
    logger.info("[Lifespan] Loading tasks...")
    await store.load()
    store.add_listener(make_broadcast_listener(get_connection_manager()))

    logger.info("[Lifespan] Starting replica watcher...")
    start_replica_watcher(store)
    try:
        yield
    finally:
        logger.info("[Lifespan] Stopping replica watcher...")
        stop_replica_watcher()
        logger.info("[Lifespan] Flushing pending writes...")
        await store.close()


def create_app() -> FastAPI:
    """Create FastAPI application (composition root)."""
    from todolist.api.lists import router as lists_router
    from todolist.api.settings import router as settings_router
    from todolist.api.tasks import router as tasks_router
    from todolist.api.websocket import router as ws_router
    from todolist.api.websocket import set_connection_manager

    app = FastAPI(
        title="Todolist",
        description="Todo lists with natural-language quick add and replica merge",
        version="0.1.0",
        lifespan=lifespan,
    )

    set_connection_manager(get_connection_manager())

    # Mount API routes
    app.include_router(tasks_router, prefix="/api")
    app.include_router(lists_router, prefix="/api")
    app.include_router(settings_router, prefix="/api")
    app.include_router(ws_router)  # WebSocket at /ws

    return app
