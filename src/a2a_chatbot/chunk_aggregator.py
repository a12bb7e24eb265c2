"""
Chunk aggregation for streamed model output.

Model backends deliver small token fragments, often splitting words or URLs.
``aggregate`` groups them into coarser chunks: a buffer is flushed when it
holds ``max_count`` fragments or when ``max_wait`` seconds have passed since
its first fragment arrived, whichever comes first. The last partial buffer is
flushed when the source is exhausted. Content is never filtered.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import AsyncIterator, List, Optional

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


async def _next_fragment(fragments: AsyncIterator[str]) -> object:
    try:
        return await fragments.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


async def aggregate(
    fragments: AsyncIterator[str],
    max_count: int,
    max_wait: float,
) -> AsyncIterator[str]:
    """Re-buffer ``fragments`` into chunks by count or elapsed time.

    At most one fragment is requested ahead of the consumer, so a slow
    consumer suspends the source instead of growing a buffer. Closing this
    generator cancels the in-flight read and closes the source.
    """
    if max_count < 1:
        raise ValueError("max_count must be at least 1")
    if max_wait <= 0:
        raise ValueError("max_wait must be positive")

    loop = asyncio.get_running_loop()
    source = fragments.__aiter__()
    buffer: List[str] = []
    deadline: Optional[float] = None
    pending: Optional[asyncio.Task[object]] = None
    flushed = 0

    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(_next_fragment(source))

            timeout = None if deadline is None else max(deadline - loop.time(), 0.0)
            done, _ = await asyncio.wait({pending}, timeout=timeout)

            if not done:
                # Timer elapsed with the read still in flight: flush, keep the read.
                flushed += 1
                yield "".join(buffer)
                buffer = []
                deadline = None
                continue

            task, pending = pending, None
            fragment = task.result()
            if fragment is _EXHAUSTED:
                break

            if not buffer:
                deadline = loop.time() + max_wait
            buffer.append(fragment)

            if len(buffer) >= max_count:
                flushed += 1
                yield "".join(buffer)
                buffer = []
                deadline = None

        if buffer:
            flushed += 1
            yield "".join(buffer)
        logger.debug("Fragment source exhausted", extra={"chunks": flushed})
    finally:
        if pending is not None and not pending.done():
            pending.cancel()
            with suppress(asyncio.CancelledError):
                await pending
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
