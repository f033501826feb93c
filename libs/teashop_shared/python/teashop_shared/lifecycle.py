import inspect
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI


class Lifecycle:
    """
    Collects startup/shutdown hooks and exposes them as a FastAPI lifespan,
    so services can keep registering hooks with a decorator instead of the
    deprecated @on_event API.

    Usage:
        lifecycle = Lifecycle()
        app = FastAPI(lifespan=lifecycle.lifespan)

        @lifecycle.on_startup
        async def _startup(): ...
    """

    def __init__(self) -> None:
        self.startup: list[Callable] = []
        self.shutdown: list[Callable] = []

    def on_startup(self, func: Callable) -> Callable:
        self.startup.append(func)
        return func

    def on_shutdown(self, func: Callable) -> Callable:
        self.shutdown.append(func)
        return func

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        for hook in self.startup:
            await _call(hook)
        try:
            yield
        finally:
            for hook in reversed(self.shutdown):
                await _call(hook)


async def _call(hook: Callable) -> None:
    res = hook()
    if inspect.isawaitable(res):
        await res
