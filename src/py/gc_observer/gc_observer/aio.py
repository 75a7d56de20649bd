import asyncio
from typing import AsyncIterator, Generic, Optional, TypeVar
from typing_extensions import override

from .core import Listener

K = TypeVar("K")


class AsyncCollectionListener(Listener[K], Generic[K]):
    """
    Listener that hands collected keys to an asyncio event loop.

    The monitor calls `on_collected` from its worker thread; the key is moved
    onto `loop` with `call_soon_threadsafe` and can be awaited there.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.loop = loop or asyncio.get_running_loop()
        self._keys: "asyncio.Queue[K]" = asyncio.Queue()

    @override
    def on_collected(self, key: K) -> None:
        self.loop.call_soon_threadsafe(self._keys.put_nowait, key)

    async def next_key(self) -> K:
        return await self._keys.get()

    def __aiter__(self) -> AsyncIterator[K]:
        return self

    async def __anext__(self) -> K:
        return await self.next_key()
