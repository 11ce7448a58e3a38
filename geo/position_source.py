"""定位源接口"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from models.data_models import PositionUpdate

logger = logging.getLogger(__name__)

PositionCallback = Callable[[PositionUpdate], None]
ErrorCallback = Callable[[Exception], None]


class PositionSource(ABC):
    """定位源：subscribe 注册回调，unsubscribe 取消。"""

    @abstractmethod
    def subscribe(self, on_position: PositionCallback, on_error: Optional[ErrorCallback] = None) -> None:
        ...

    @abstractmethod
    def unsubscribe(self) -> None:
        ...


class PushPositionSource(PositionSource):
    """
    由外部（浏览器通过 Web API）推送位置的定位源。

    push() 可以在任意线程调用，回调总是在事件循环线程上执行。
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._on_position: Optional[PositionCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    def subscribe(self, on_position: PositionCallback, on_error: Optional[ErrorCallback] = None) -> None:
        self._on_position = on_position
        self._on_error = on_error

    def unsubscribe(self) -> None:
        self._on_position = None
        self._on_error = None

    @property
    def is_subscribed(self) -> bool:
        return self._on_position is not None

    def push(self, update: PositionUpdate) -> None:
        self._deliver(self._emit_position, update)

    def fail(self, error: Exception) -> None:
        self._deliver(self._emit_error, error)

    def _deliver(self, func, arg) -> None:
        if self._loop is None:
            func(arg)
        else:
            self._loop.call_soon_threadsafe(func, arg)

    def _emit_position(self, update: PositionUpdate) -> None:
        if self._on_position is not None:
            self._on_position(update)

    def _emit_error(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)
        else:
            logger.warning("定位失败: %s", error)
