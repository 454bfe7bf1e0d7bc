from __future__ import annotations

from typing import Any, Protocol


class PagePort(Protocol):
    """The subset of a Playwright page the fetch orchestrator drives."""

    async def goto(self, url: str, **kwargs: Any) -> Any:
        ...

    async def wait_for_selector(self, selector: str, **kwargs: Any) -> Any:
        ...

    async def content(self) -> str:
        ...

    async def go_back(self, **kwargs: Any) -> Any:
        ...

    async def close(self) -> None:
        ...


class SessionPoolPort(Protocol):
    async def acquire(self) -> Any:
        ...

    async def new_page(self, handle: Any) -> PagePort:
        ...

    async def release(self, handle: Any) -> None:
        ...

    async def restart(self) -> None:
        ...

    async def close_all(self) -> None:
        ...

    def is_healthy(self) -> bool:
        ...


