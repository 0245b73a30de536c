"""
Reader/Writer Lock
동시 읽기는 허용하고 쓰기는 배타적으로 수행하는 락
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """
    쓰기 우선 Reader/Writer 락

    - 읽기끼리는 서로 막지 않음
    - 쓰기는 모든 읽기/쓰기를 배제
    - 대기 중인 쓰기가 있으면 새 읽기는 대기 (쓰기 기아 방지)

    Usage:
        lock = ReadWriteLock()
        with lock.read():
            ...
        with lock.write():
            ...
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """공유 읽기 구간"""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """배타 쓰기 구간"""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    @property
    def readers(self) -> int:
        """현재 읽기 보유 수 (디버깅/테스트용)"""
        with self._cond:
            return self._readers
