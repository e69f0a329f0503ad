"""
Session Subscription Manager.

Owns the single subscription of one authenticated session to that user's
private channel and turns incoming delivery events into view
invalidations:

- participants events invalidate the conversation list
- messages events invalidate that conversation's message list and the
  conversation list (latest-message preview)
- conversations events invalidate the conversation list and the removed
  conversation's message list

State machine:

    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> CLOSED/ERRORED -> CONNECTING

Only ensure_subscribed() moves a dropped session back to CONNECTING, and it
does nothing while a subscription is live or being set up. stop() returns
to DISCONNECTED from any state.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.models.api.events import ChangeTable, DeliveryEvent, user_channel
from app.realtime.base_event_bus import EventBus, Subscription

logger = logging.getLogger(__name__)

MaybeAwaitable = Union[None, Awaitable[None]]
ConversationListCallback = Callable[[], MaybeAwaitable]
MessageListCallback = Callable[[str], MaybeAwaitable]
EventListener = Callable[[DeliveryEvent], MaybeAwaitable]


class SubscriptionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    SUBSCRIBED = "SUBSCRIBED"
    CLOSED = "CLOSED"
    ERRORED = "ERRORED"


async def _call(callback: Callable[..., MaybeAwaitable], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ViewInvalidator:
    """Registry of callbacks that refresh cached views.

    Handlers must be idempotent: the same event may arrive on several
    sessions of one user.
    """

    def __init__(self) -> None:
        self._conversation_list: List[ConversationListCallback] = []
        self._message_list: List[MessageListCallback] = []

    def on_conversation_list(self, callback: ConversationListCallback) -> None:
        self._conversation_list.append(callback)

    def on_message_list(self, callback: MessageListCallback) -> None:
        self._message_list.append(callback)

    async def invalidate_conversation_list(self) -> None:
        for callback in self._conversation_list:
            await _call(callback)

    async def invalidate_message_list(self, conversation_id: str) -> None:
        for callback in self._message_list:
            await _call(callback, conversation_id)


class SessionSubscriptionManager:
    """Keeps exactly one subscription alive for one session."""

    def __init__(self, event_bus: EventBus, invalidator: ViewInvalidator):
        self.event_bus = event_bus
        self.invalidator = invalidator
        self.state = SubscriptionState.DISCONNECTED
        self.user_id: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self._reader: Optional["asyncio.Task[None]"] = None
        self._subscribed = asyncio.Event()
        self._lock = asyncio.Lock()
        self._listeners: List[EventListener] = []

    @property
    def channel(self) -> Optional[str]:
        return user_channel(self.user_id) if self.user_id is not None else None

    @property
    def is_subscribed(self) -> bool:
        return self.state == SubscriptionState.SUBSCRIBED

    def add_listener(self, listener: EventListener) -> None:
        """Receive every valid event before it is dispatched."""
        self._listeners.append(listener)

    async def start(self, user_id: Any) -> None:
        """Begin the session for user_id and subscribe to its channel."""
        if self.state != SubscriptionState.DISCONNECTED:
            raise RuntimeError(
                f"Session for user {self.user_id} already started ({self.state.value})"
            )
        self.user_id = str(user_id)
        await self._connect()

    async def wait_until_subscribed(self, timeout: Optional[float] = None) -> None:
        """Suspend until the transport has acknowledged the subscription.

        Raises:
            asyncio.TimeoutError: Not subscribed within timeout seconds.
        """
        await asyncio.wait_for(self._subscribed.wait(), timeout)

    async def ensure_subscribed(self) -> bool:
        """Liveness check. Resubscribes only if the subscription was lost.

        Returns:
            True if a new subscription was created.
        """
        if self.user_id is None:
            return False
        if self.state in (SubscriptionState.SUBSCRIBED, SubscriptionState.CONNECTING):
            if self._subscription is not None and not self._subscription.is_active:
                self._mark_down(SubscriptionState.CLOSED)
            else:
                return False
        logger.info(f"Resubscribing {self.channel} after {self.state.value}")
        return await self._connect()

    async def stop(self) -> None:
        """End the session. Pending events are dropped."""
        async with self._lock:
            reader, self._reader = self._reader, None
            subscription, self._subscription = self._subscription, None
            self._transition(SubscriptionState.DISCONNECTED)
            self._subscribed.clear()
            self.user_id = None

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if subscription is not None:
            await subscription.close()

    async def _connect(self) -> bool:
        async with self._lock:
            if self.user_id is None or self.state in (
                SubscriptionState.CONNECTING,
                SubscriptionState.SUBSCRIBED,
            ):
                return False

            stale = self._subscription
            self._subscription = None
            if stale is not None:
                await stale.close()

            channel = user_channel(self.user_id)
            self._transition(SubscriptionState.CONNECTING)
            try:
                subscription = await self.event_bus.open_subscription(channel)
            except Exception as e:
                logger.error(f"Subscribing to {channel} failed: {e}")
                self._transition(SubscriptionState.ERRORED)
                return False

            self._subscription = subscription
            self._transition(SubscriptionState.SUBSCRIBED)
            self._subscribed.set()
            self._reader = asyncio.create_task(self._read_loop(subscription))
            return True

    async def _read_loop(self, subscription: Subscription) -> None:
        """Process events one at a time, in arrival order."""
        try:
            async for payload in subscription:
                await self._handle(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Reader for {subscription.channel} failed: {e}")
            if subscription is self._subscription:
                self._mark_down(SubscriptionState.ERRORED)
            return

        if subscription is self._subscription:
            self._mark_down(SubscriptionState.CLOSED)

    async def _handle(self, payload: Any) -> None:
        try:
            event = DeliveryEvent.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed event on {self.channel}: {e}")
            return

        logger.debug(
            f"Event on {self.channel}: {event.table.value} {event.operation.value}"
        )
        try:
            for listener in self._listeners:
                await _call(listener, event)
            await self._dispatch(event)
        except Exception as e:
            # One bad handler must not end the session
            logger.error(f"Handling event on {self.channel} failed: {e}")

    async def _dispatch(self, event: DeliveryEvent) -> None:
        row = event.row()
        if event.table == ChangeTable.PARTICIPANTS:
            await self.invalidator.invalidate_conversation_list()
        elif event.table == ChangeTable.MESSAGES:
            conversation_id = row.get("conversation_id")
            if conversation_id:
                await self.invalidator.invalidate_message_list(str(conversation_id))
            await self.invalidator.invalidate_conversation_list()
        elif event.table == ChangeTable.CONVERSATIONS:
            conversation_id = row.get("id")
            if conversation_id:
                await self.invalidator.invalidate_message_list(str(conversation_id))
            await self.invalidator.invalidate_conversation_list()

    def _mark_down(self, state: SubscriptionState) -> None:
        if self.state in (SubscriptionState.SUBSCRIBED, SubscriptionState.CONNECTING):
            self._transition(state)
            self._subscribed.clear()

    def _transition(self, state: SubscriptionState) -> None:
        if state != self.state:
            logger.info(
                f"Session {self.user_id}: {self.state.value} -> {state.value}"
            )
            self.state = state
