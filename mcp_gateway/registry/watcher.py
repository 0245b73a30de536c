"""
Directory Watcher
설정 디렉터리의 변경을 감시하여 레지스트리 load/remove 호출

watchdog Observer 를 사용하며 하위 디렉터리는 감시하지 않습니다.
- 생성/수정: 파일별 대기 타이머를 (재)설정하고 마지막 이벤트 후 한 번만 로드
- 삭제: 즉시 제거
- 이름 변경: 이전 경로 제거 후 잠시 뒤 디렉터리 전체 재스캔
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from mcp_gateway.exceptions import WatchSubsystemError
from mcp_gateway.registry.definitions import is_definition_file
from mcp_gateway.registry.service_registry import ServiceRegistry

logger = logging.getLogger(__name__)

DEFAULT_LOAD_DELAY = 0.2
DEFAULT_RESCAN_DELAY = 0.3


class DebouncedTimers:
    """
    키별 지연 실행 타이머

    같은 키로 다시 schedule 하면 이전 타이머를 취소하고 새로 시작합니다.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._timers: Dict[str, threading.Timer] = {}
        self._closed = False

    def schedule(self, key: str, delay: float, func: Callable[[], None]) -> None:
        with self._lock:
            if self._closed:
                return
            existing = self._timers.pop(key, None)
            if existing is not None:
                existing.cancel()

            timer = threading.Timer(delay, self._fire, args=(key, func))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def cancel(self, key: str) -> bool:
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def _fire(self, key: str, func: Callable[[], None]) -> None:
        with self._lock:
            current = self._timers.get(key)
            if current is not None and current is threading.current_thread():
                del self._timers[key]
        try:
            func()
        except Exception as e:
            logger.error(f"Deferred task {key!r} failed: {e}", exc_info=True)


class _DefinitionEventHandler(FileSystemEventHandler):
    """watchdog 이벤트를 DirectoryWatcher 로 전달"""

    def __init__(self, watcher: "DirectoryWatcher"):
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        self._watcher.dispatch(self._watcher.handle_changed, event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._watcher.dispatch(self._watcher.handle_changed, event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._watcher.dispatch(self._watcher.handle_deleted, event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._watcher.dispatch(self._watcher.handle_moved, event)


class DirectoryWatcher:
    """
    설정 디렉터리 감시자

    레지스트리에 대한 유일한 영향은 load/remove/reload_all 호출이며,
    모든 작업은 백그라운드 스레드에서 수행되어 요청 처리를 막지 않습니다.
    """

    RESCAN_KEY = "__rescan__"

    def __init__(
        self,
        registry: ServiceRegistry,
        load_delay: float = DEFAULT_LOAD_DELAY,
        rescan_delay: float = DEFAULT_RESCAN_DELAY,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        """
        Args:
            registry: 갱신할 ServiceRegistry
            load_delay: 생성/수정 이벤트 후 로드까지 대기 시간 (초)
            rescan_delay: 이름 변경 이벤트 후 재스캔까지 대기 시간 (초)
            observer_factory: watchdog Observer 생성 함수
        """
        self.registry = registry
        self.load_delay = load_delay
        self.rescan_delay = rescan_delay
        self._observer_factory = observer_factory
        self._observer: Optional[Observer] = None
        self._timers = DebouncedTimers()

    def start(self) -> None:
        """감시 시작"""
        if self._observer is not None:
            return
        observer = self._observer_factory()
        observer.schedule(
            _DefinitionEventHandler(self),
            str(self.registry.config_dir),
            recursive=False,
        )
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info(f"Watching {self.registry.config_dir} for service definitions")

    def stop(self) -> None:
        """감시 중지 (대기 중인 타이머 취소 후 Observer 스레드 종료 대기)"""
        self._timers.cancel_all()
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5.0)
        logger.info("Directory watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    # ------------------------------------------------------------------
    # 이벤트 처리
    # ------------------------------------------------------------------

    def dispatch(self, handler: Callable[[FileSystemEvent], None], event: FileSystemEvent) -> None:
        """이벤트 처리 중 에러는 로그만 남기고 감시를 계속"""
        try:
            handler(event)
        except Exception as e:
            error = WatchSubsystemError(f"failed to handle {event.event_type} event: {e}")
            logger.error(error.message, exc_info=True, extra={"path": _src_path(event)})

    def handle_changed(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = _src_path(event)
        if not is_definition_file(path):
            return
        self._timers.schedule(path, self.load_delay, lambda: self.registry.load(path))

    def handle_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = _src_path(event)
        if not is_definition_file(path):
            return
        self._timers.cancel(path)
        self.registry.remove(path)

    def handle_moved(self, event: FileSystemEvent) -> None:
        path = _src_path(event)
        if not event.is_directory and is_definition_file(path):
            self._timers.cancel(path)
            self.registry.remove(path)
        # 원자적 교체 저장 패턴 대비: 정확한 diff 대신 전체 재스캔
        self._timers.schedule(self.RESCAN_KEY, self.rescan_delay, self.registry.reload_all)


def _src_path(event: FileSystemEvent) -> str:
    path = event.src_path
    if isinstance(path, bytes):
        path = path.decode()
    return str(Path(path))
