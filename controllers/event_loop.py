"""在后台线程中运行 asyncio 事件循环，供 Flask 路由和命令行调用"""

import asyncio
import threading
from typing import Any, Callable


class EventLoopThread:
    """所有状态修改都在这个循环线程上执行，外部线程通过 run/call 提交任务并等待结果。"""

    def __init__(self, timeout: float = 120.0):
        self.timeout = timeout
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, daemon=True, name="drivesafe-loop")
        self._started = False

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> "EventLoopThread":
        if not self._started:
            self._thread.start()
            self._started = True
        return self

    def run(self, coro) -> Any:
        """在循环线程上执行协程并阻塞等待结果，异常原样抛出。"""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(self.timeout)

    def call(self, func: Callable, *args) -> Any:
        """在循环线程上执行普通函数并等待结果。"""
        async def _wrapper():
            return func(*args)
        return self.run(_wrapper())

    def stop(self) -> None:
        if self._started:
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout=2.0)
            self._started = False
