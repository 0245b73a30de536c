"""
Service Registry - 설정 파일 기반 Service Discovery
서비스 정의 로드/제거, 라우트 인덱스 재빌드, 스냅샷 제공
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from mcp_gateway.exceptions import GatewayStartupError, ServiceDefinitionError
from mcp_gateway.registry.definitions import (
    ServiceDefinition,
    is_definition_file,
    load_service_definition,
)
from mcp_gateway.routing.route_table import RouteMatch, RouteTable
from mcp_gateway.utils.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """
    Service Registry 구현

    - 설정 디렉터리의 YAML 파일 하나당 서비스 하나
    - 이름 → 서비스, 파일 → 이름 매핑 유지
    - 변경 시 method → Route 인덱스를 전체 재빌드 (부분 갱신 없음)
    - 쓰기(load/remove)는 배타, 읽기(match/snapshot)는 동시 허용
    - 락 구간에서는 메모리 갱신만 수행 (파일 I/O 없음)
    """

    def __init__(self, config_dir: Union[str, Path]):
        self._config_dir = Path(config_dir).resolve()
        self._lock = ReadWriteLock()
        self._services: Dict[str, ServiceDefinition] = {}
        self._source_to_name: Dict[str, str] = {}
        self._routes = RouteTable()

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    def ensure_config_dir(self) -> Path:
        """
        설정 디렉터리 생성 (없으면)

        Raises:
            GatewayStartupError: 디렉터리를 만들 수 없거나 디렉터리가 아님
        """
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise GatewayStartupError(
                f"unable to create config directory {self._config_dir}: {e}"
            ) from e
        if not self._config_dir.is_dir():
            raise GatewayStartupError(f"config path {self._config_dir} is not a directory")
        return self._config_dir

    # ------------------------------------------------------------------
    # 쓰기 연산
    # ------------------------------------------------------------------

    def load(self, source: Union[str, Path]) -> Optional[ServiceDefinition]:
        """
        설정 파일 하나를 로드하여 등록/교체

        파일의 serviceName 이 바뀌었으면 이전 이름의 서비스를 같은 쓰기 구간에서 제거합니다.

        Args:
            source: 정의 파일 경로

        Returns:
            등록된 ServiceDefinition, 실패 시 None (해당 파일만 건너뜀)
        """
        source_key = self._source_key(source)
        try:
            service = load_service_definition(source_key)
        except ServiceDefinitionError as e:
            logger.warning(
                f"Failed to load service from {Path(source_key).name}: {e.message}",
                extra={"source": source_key, "error_type": type(e).__name__},
            )
            return None

        with self._lock.write():
            old_name = self._source_to_name.get(source_key)
            if old_name is not None and old_name != service.name:
                self._services.pop(old_name, None)

            # 다른 파일이 같은 이름을 쓰고 있었으면 그 파일의 매핑을 해제
            previous = self._services.get(service.name)
            if previous is not None and previous.source != source_key:
                self._source_to_name.pop(previous.source, None)
                logger.warning(
                    f"Service {service.name!r} from {Path(source_key).name} "
                    f"replaces definition from {Path(previous.source).name}"
                )

            self._services[service.name] = service
            self._source_to_name[source_key] = service.name
            self._rebuild_routes_locked()

        logger.info(
            f"Loaded service {service.name!r} from {Path(source_key).name}",
            extra={"service": service.name, "endpoints": len(service.endpoints)},
        )
        return service

    def remove(self, source: Union[str, Path]) -> Optional[str]:
        """
        설정 파일에 연결된 서비스 제거

        Returns:
            제거된 서비스 이름, 등록되지 않은 파일이면 None
        """
        source_key = self._source_key(source)
        with self._lock.write():
            name = self._source_to_name.pop(source_key, None)
            if name is None:
                return None
            self._services.pop(name, None)
            self._rebuild_routes_locked()

        logger.info(
            f"Removed service {name!r} (source {Path(source_key).name})",
            extra={"service": name},
        )
        return name

    def load_existing(self) -> List[ServiceDefinition]:
        """
        설정 디렉터리의 모든 YAML 파일 로드 (하위 디렉터리 제외)

        Returns:
            로드에 성공한 서비스 목록
        """
        loaded = []
        for path in self._list_definition_files():
            service = self.load(path)
            if service is not None:
                loaded.append(service)
        return loaded

    def reload_all(self) -> List[ServiceDefinition]:
        """디렉터리 전체 재스캔 (이름 변경 이벤트 후 안전망)"""
        return self.load_existing()

    def _list_definition_files(self) -> List[Path]:
        try:
            entries = sorted(self._config_dir.iterdir())
        except OSError as e:
            logger.error(f"Failed to read config directory {self._config_dir}: {e}")
            return []
        return [p for p in entries if p.is_file() and is_definition_file(p)]

    def _rebuild_routes_locked(self) -> None:
        """쓰기 락 보유 상태에서 라우트 인덱스 전체 재빌드"""
        self._routes = RouteTable.build(self._services.values())

    def _source_key(self, source: Union[str, Path]) -> str:
        path = Path(source)
        if not path.is_absolute():
            path = self._config_dir / path
        return str(path)

    # ------------------------------------------------------------------
    # 읽기 연산
    # ------------------------------------------------------------------

    def match(self, method: str, path: str) -> RouteMatch:
        """
        요청 (method, path) 에 매칭되는 라우트 조회

        Raises:
            RouteNotFound: 매칭 없음
        """
        with self._lock.read():
            return self._routes.match(method, path)

    def snapshot(self) -> Tuple[ServiceDefinition, ...]:
        """현재 서비스 전체의 읽기 전용 복사본 (이름순)"""
        with self._lock.read():
            return self._snapshot_locked()

    @contextmanager
    def read_lock(self) -> Iterator[Tuple[ServiceDefinition, ...]]:
        """
        공유 읽기 구간 동안 일관된 스냅샷 제공

        Usage:
            with registry.read_lock() as services:
                ...  # 이 구간에서는 쓰기가 끼어들지 않음
        """
        with self._lock.read():
            yield self._snapshot_locked()

    def _snapshot_locked(self) -> Tuple[ServiceDefinition, ...]:
        return tuple(self._services[name] for name in sorted(self._services))

    def get_service(self, name: str) -> Optional[ServiceDefinition]:
        with self._lock.read():
            return self._services.get(name)

    def source_of(self, name: str) -> Optional[str]:
        """서비스 이름에 연결된 설정 파일 경로"""
        with self._lock.read():
            service = self._services.get(name)
            return service.source if service else None

    def route_count(self) -> int:
        with self._lock.read():
            return len(self._routes)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._services)
