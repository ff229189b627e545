"""
Shared: Pub/Sub ブローカークライアント

サービスはトランスポートのネイティブ API を直接触らず、このラッパーだけを使う。
公開するのは「トピック文字列 + 不透明なペイロード」のみ。
スキーマの変更は events モジュール側で完結する。

┌──────────────┐  publish(topic)  ┌────────┐  dispatch(topic)  ┌─────────┐
│   Producer   │ ───────────────▶ │ Broker │ ────────────────▶ │ Handler │ × N
└──────────────┘                  └────────┘   (並行タスク)     └─────────┘

- トピックは完全一致のみ（ワイルドカードなし）
- 配信保証はトランスポートの既定値のまま（Redis Pub/Sub は at-most-once）
- ハンドラ呼び出しは1件ずつ独立したタスクで実行され、
  遅いハンドラが他のメッセージの配信を止めることはない

クライアントはプロセスごとに明示的に生成し、各サービスの起動処理へ渡す。
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from . import events
from .errors import BrokerConnectionError, BrokerNotConnectedError, PublishError

logger = logging.getLogger(__name__)

Handler = Callable[[str], Awaitable[None]]

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6379


class InvocationState(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(eq=False)
class HandlerInvocation:
    """
    ハンドラ1回分の呼び出し。

    状態遷移:
        RUNNING → COMPLETED
        RUNNING → FAILED     (ハンドラが例外を送出)
        RUNNING → CANCELLED  (cancel() またはシャットダウン時の打ち切り)
    """

    topic: str
    handler_name: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: InvocationState = InvocationState.RUNNING
    finished_at: datetime | None = None
    error: BaseException | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()

    def finish(self, state: InvocationState, error: BaseException | None = None) -> None:
        self.state = state
        self.error = error
        self.finished_at = datetime.now(timezone.utc)


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", repr(handler))


class BrokerClient:
    """
    トランスポート非依存の部分: ハンドラ登録とディスパッチ。

    topic → ハンドラのリスト（登録順、重複なし）を保持し、
    dispatch() が到着したトピックのハンドラをすべて起動する。
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._in_flight: set[HandlerInvocation] = set()
        self._accepting = False

    # ── トランスポート操作（サブクラスで実装） ────────

    async def connect(self) -> None:
        raise NotImplementedError

    async def publish(self, topic: str, fact: events.Fact) -> None:
        raise NotImplementedError

    async def subscribe(self, topic: str, handler: Handler) -> None:
        raise NotImplementedError

    async def disconnect(self, grace_period: float = 0.0) -> None:
        raise NotImplementedError

    # ── ハンドラ登録とディスパッチ ──────────────────

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def topics(self) -> list[str]:
        return list(self._handlers)

    def handlers_for(self, topic: str) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(topic, ()))

    def add_handler(self, topic: str, handler: Handler) -> bool:
        """ハンドラを登録する。このトピックが初登場なら True を返す。"""
        new_topic = topic not in self._handlers
        handlers = self._handlers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)
        return new_topic

    def dispatch(self, topic: str, payload: str) -> list[HandlerInvocation]:
        """
        トピックに登録された全ハンドラを、それぞれ独立したタスクとして起動する。
        呼び出し側はハンドラの完了を待たない。
        """
        if not self._accepting:
            logger.debug("Dropping message on %s: broker is shutting down", topic)
            return []

        loop = asyncio.get_running_loop()
        invocations = []
        for handler in self._handlers.get(topic, ()):
            invocation = HandlerInvocation(topic, _handler_name(handler))
            invocation.task = loop.create_task(handler(payload))
            invocation.task.add_done_callback(
                lambda task, inv=invocation: self._on_done(inv, task)
            )
            self._in_flight.add(invocation)
            invocations.append(invocation)
        return invocations

    def _on_done(self, invocation: HandlerInvocation, task: asyncio.Task) -> None:
        self._in_flight.discard(invocation)
        if task.cancelled():
            invocation.finish(InvocationState.CANCELLED)
            logger.warning(
                "Handler %s cancelled on %s", invocation.handler_name, invocation.topic
            )
            return
        error = task.exception()
        if error is not None:
            # 再試行もデッドレターも無い。ログに残して破棄する
            invocation.finish(InvocationState.FAILED, error)
            logger.error(
                "Handler %s failed on %s",
                invocation.handler_name,
                invocation.topic,
                exc_info=error,
            )
        else:
            invocation.finish(InvocationState.COMPLETED)

    async def drain(self, grace_period: float = 0.0) -> None:
        """
        実行中のハンドラを最大 grace_period 秒待ち、残りはキャンセルする。
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + grace_period
        while self._in_flight:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.wait(
                {inv.task for inv in self._in_flight}, timeout=remaining
            )

        stragglers = [inv.task for inv in self._in_flight]
        if not stragglers:
            return
        logger.warning("Cancelling %d in-flight handler(s)", len(stragglers))
        for task in stragglers:
            task.cancel()
        await asyncio.gather(*stragglers, return_exceptions=True)


class RedisBrokerClient(BrokerClient):
    """
    Redis Pub/Sub を使うブローカークライアント。

    注意: Redis Pub/Sub は fire-and-forget 方式。
    購読者がいない間に発行されたメッセージは失われる。
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        poll_timeout: float = 1.0,
    ) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.poll_timeout = poll_timeout
        self._redis: aioredis.Redis | None = None
        self._pubsub = None
        self._reader: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}"

    async def connect(self) -> None:
        """ブローカーに接続する。到達できなければ BrokerConnectionError（再試行なし）。"""
        redis_conn = aioredis.from_url(self.url, decode_responses=True)
        try:
            await redis_conn.ping()
        except RedisError as e:
            await redis_conn.aclose()
            logger.error("Cannot reach broker at %s:%s: %s", self.host, self.port, e)
            raise BrokerConnectionError(
                f"Broker unreachable at {self.host}:{self.port}"
            ) from e

        self._redis = redis_conn
        self._pubsub = redis_conn.pubsub()
        self._accepting = True
        logger.info("Connected to broker at %s:%s", self.host, self.port)

    async def publish(self, topic: str, fact: events.Fact) -> None:
        """
        イベントをシリアライズして送信する。
        トランスポートに渡した時点で戻り、購読者への到達は保証しない。
        """
        if self._redis is None:
            raise BrokerNotConnectedError("publish() called before connect()")

        payload = events.encode(fact)
        try:
            receivers = await self._redis.publish(topic, payload)
        except RedisError as e:
            logger.error("Failed to publish to %s: %s", topic, e)
            raise PublishError(f"Failed to publish to {topic!r}") from e
        logger.debug("Published to %s (%s receiver(s))", topic, receivers)

    async def subscribe(self, topic: str, handler: Handler) -> None:
        if self._pubsub is None:
            raise BrokerNotConnectedError("subscribe() called before connect()")

        if self.add_handler(topic, handler):
            async with self._lock:
                await self._pubsub.subscribe(topic)
            logger.info("Subscribed to %s channel", topic)

        if self._reader is None:
            self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        """購読中のチャネルからメッセージを読み、ディスパッチし続ける。"""
        while True:
            try:
                async with self._lock:
                    message = await self._pubsub.get_message(
                        ignore_subscribe_messages=True, timeout=self.poll_timeout
                    )
            except Exception:
                logger.exception("Error while reading from broker")
                await asyncio.sleep(1.0)
                continue

            if message and message["type"] == "message":
                try:
                    self.dispatch(message["channel"], message["data"])
                except Exception:
                    # メッセージは破棄して読み込みを続ける
                    logger.exception("Failed to dispatch message on %s", message["channel"])
            else:
                await asyncio.sleep(0.01)

    async def disconnect(self, grace_period: float = 0.0) -> None:
        """
        新しいメッセージの受け付けを止め、実行中のハンドラを
        grace_period 秒まで待ってから接続を閉じる。
        ハンドラ内からの publish はドレイン中も使える。
        """
        if self._redis is None:
            return

        self._accepting = False
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        try:
            if self._handlers:
                await self._pubsub.unsubscribe()
        except RedisError as e:
            logger.warning("Failed to unsubscribe cleanly: %s", e)

        try:
            await self.drain(grace_period)
        finally:
            await self._pubsub.aclose()
            await self._redis.aclose()
            self._pubsub = None
            self._redis = None
            logger.info("Disconnected from broker at %s:%s", self.host, self.port)


class InMemoryBrokerClient(BrokerClient):
    """
    プロセス内で完結するブローカー（テスト・単一プロセス実行用）。

    publish されたペイロードは published に記録され、
    同じクライアントの購読ハンドラへディスパッチされる。
    """

    def __init__(self) -> None:
        super().__init__()
        self.published: list[tuple[str, str]] = []
        self._connected = False

    async def connect(self) -> None:
        self._connected = True
        self._accepting = True

    async def publish(self, topic: str, fact: events.Fact) -> None:
        if not self._connected:
            raise BrokerNotConnectedError("publish() called before connect()")
        payload = events.encode(fact)
        self.published.append((topic, payload))
        self.dispatch(topic, payload)

    async def subscribe(self, topic: str, handler: Handler) -> None:
        if not self._connected:
            raise BrokerNotConnectedError("subscribe() called before connect()")
        self.add_handler(topic, handler)

    async def disconnect(self, grace_period: float = 0.0) -> None:
        self._accepting = False
        await self.drain(grace_period)
        self._connected = False

    def published_on(self, topic: str) -> list[str]:
        return [payload for t, payload in self.published if t == topic]
