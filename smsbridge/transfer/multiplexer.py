from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import aiohttp
import yarl

from smsbridge.api.query import DEFAULT_API_URL, METHOD_FETCH, Credentials, build_request_url
from smsbridge.errors import TransportError
from smsbridge.observability import metrics as prom_metrics
from smsbridge.observability import tracing
from smsbridge.transfer.request import Request, RequestContext


logger = logging.getLogger(__name__)

FetchBytesFn = Callable[[str], Awaitable[bytes]]


class AiohttpFetcher:
    """GET a fully encoded URL and return the body; failures become TransportError."""

    def __init__(self, *, timeout_seconds: float = 30.0) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __call__(self, url: str) -> bytes:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        try:
            async with self._session.get(yarl.URL(url, encoded=True)) as response:
                body = await response.read()
                if response.status < 200 or response.status >= 300:
                    raise TransportError(f"API request failed ({response.status})")
                return body
        except aiohttp.ClientError as e:
            raise TransportError(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError("Request timed out") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


@dataclass(frozen=True)
class Completion:
    request: Request
    body: bytes
    error: Optional[TransportError]
    duration_ms: int


class TransferMultiplexer:
    """Runs many API transfers concurrently on the current event loop.

    Each submitted request becomes one task keyed by an integer token.
    Finished transfers are claimed either in bulk by step() or individually
    by wait(); a claimed token must then be released with completed().
    """

    def __init__(
        self,
        *,
        credentials: Credentials,
        base_url: str = DEFAULT_API_URL,
        fetch_bytes: Optional[FetchBytesFn] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._credentials = credentials
        self._base_url = base_url
        self._fetcher = fetch_bytes or AiohttpFetcher(timeout_seconds=timeout_seconds)
        self._tokens = itertools.count(1)
        self._contexts: dict[int, RequestContext] = {}
        self._tasks: dict[int, asyncio.Task] = {}
        self._claimed: set[int] = set()
        self.fetches_in_flight = 0
        self.submitted_total = 0

    def __len__(self) -> int:
        return len(self._contexts)

    def submit(self, request: Request) -> int:
        url = build_request_url(
            base_url=self._base_url,
            credentials=self._credentials,
            method=request.method,
            params=request.params,
        )
        token = next(self._tokens)
        ctx = RequestContext(token=token, request=request, url=url, started_at=time.perf_counter())
        self._contexts[token] = ctx
        self._tasks[token] = asyncio.get_running_loop().create_task(self._perform(ctx))
        if request.method == METHOD_FETCH:
            self.fetches_in_flight += 1
        self.submitted_total += 1
        prom_metrics.inc_submitted(method=request.method)
        logger.debug("submitted %s transfer %d", request.method, token)
        return token

    async def _perform(self, ctx: RequestContext) -> None:
        with tracing.start_span("sms.transfer", attributes={"sms.method": ctx.request.method}):
            try:
                ctx.body.extend(await self._fetcher(ctx.url))
            except TransportError as e:
                ctx.error = e
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                ctx.error = TransportError(f"Network error: {e}")

    def _harvest(self) -> list[int]:
        done = [
            token
            for token, task in self._tasks.items()
            if task.done() and token not in self._claimed
        ]
        self._claimed.update(done)
        return done

    async def step(self) -> list[int]:
        if not self._tasks:
            return []
        await asyncio.sleep(0)
        return self._harvest()

    async def wait(self, token: int) -> bool:
        task = self._tasks.get(token)
        if task is None:
            raise KeyError(f"unknown transfer token: {token}")
        await asyncio.wait({task})
        if token not in self._tasks or token in self._claimed:
            return False
        self._claimed.add(token)
        return True

    def completed(self, token: int) -> Completion:
        if token not in self._claimed:
            raise KeyError(f"transfer {token} has not been claimed")
        ctx = self._contexts.pop(token)
        task = self._tasks.pop(token)
        self._claimed.discard(token)
        if ctx.request.method == METHOD_FETCH:
            self.fetches_in_flight -= 1

        if task.cancelled():
            ctx.error = TransportError("transfer cancelled")
        elif task.exception() is not None:
            exc = task.exception()
            logger.error("%s transfer %d crashed", ctx.request.method, token, exc_info=exc)
            ctx.error = TransportError(f"transfer failed: {exc!r}")

        duration_ms = int((time.perf_counter() - ctx.started_at) * 1000)
        status = "OK" if ctx.error is None else "TRANSPORT_ERROR"
        prom_metrics.observe_transfer(method=ctx.request.method, duration_ms=duration_ms, status=status)
        return Completion(
            request=ctx.request,
            body=bytes(ctx.body),
            error=ctx.error,
            duration_ms=duration_ms,
        )

    async def abandon(self) -> list[RequestContext]:
        """Cancel and release every transfer; returns the abandoned contexts."""
        abandoned = list(self._contexts.values())
        tasks = list(self._tasks.values())
        self._contexts.clear()
        self._tasks.clear()
        self._claimed.clear()
        self.fetches_in_flight = 0
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        close = getattr(self._fetcher, "close", None)
        if close is not None:
            await close()
        if abandoned:
            logger.info("abandoned %d in-flight transfer(s)", len(abandoned))
        return abandoned
