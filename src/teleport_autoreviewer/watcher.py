"""Request watcher - review pending access requests as they appear.

Lifecycle:
1. Subscribe to access-request events on the current connection
2. Replay: list every request already PENDING and review each once
   (events arriving meanwhile stay buffered in the subscription)
3. Live: review each PUT event carrying a PENDING request

While live, the watcher also waits on the credential manager's update
mailbox. On a newer connection it subscribes there first, closes the old
subscription (releasing its lease), then replays pending requests again to
catch anything submitted during the switch.

A failed deny is logged and the request is left Pending; a subscription
that cannot be opened or ends unexpectedly raises WatchConnectionError.
"""

from __future__ import annotations

__all__ = [
    "RequestWatcher",
    "ReviewOutcome",
]

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Literal

from teleport_autoreviewer.constants import (
    ACCESS_REQUEST_KIND,
    DEFAULT_REJECTION_MESSAGE,
    DENIED_REQUEST_CACHE_SIZE,
)
from teleport_autoreviewer.exceptions import (
    AccessPlaneError,
    TransientRequestError,
    WatchConnectionError,
)
from teleport_autoreviewer.identity.manager import ConnectionContext, CredentialManager
from teleport_autoreviewer.pdp.engine import PolicyEvaluator
from teleport_autoreviewer.plane.models import AccessRequest, EventType, RequestState, WatchEvent
from teleport_autoreviewer.plane.protocol import WatchStream
from teleport_autoreviewer.state import ServiceState
from teleport_autoreviewer.telemetry.system.system_logger import get_system_logger

_logger = get_system_logger()


@dataclass(frozen=True, slots=True)
class ReviewOutcome:
    """What the watcher did with one request.

    Attributes:
        request_id: ID of the request reviewed.
        action: "denied", "deny_failed" (transition failed, request stays
            Pending), "abstained" (no rule triggered), or "skipped" (not
            pending, or already denied by this process).
        rule_name: Triggering rule, for denied/deny_failed.
        message: Denial reason sent, for denied/deny_failed.
        error: Failure message, for deny_failed.
    """

    request_id: str
    action: Literal["denied", "deny_failed", "abstained", "skipped"]
    rule_name: str | None = None
    message: str | None = None
    error: str | None = None


class RequestWatcher:
    """Watches the plane for pending requests and denies policy matches.

    Args:
        credentials: Source of the live connection and its updates.
        evaluator: Decides which requests are denied.
        state: Shared health state ("last request seen", connectivity).
        default_message: Denial reason for rules with an empty message.
        kind: Resource kind to watch.
        denied_cache_size: How many denied request IDs to remember.
    """

    def __init__(
        self,
        credentials: CredentialManager,
        evaluator: PolicyEvaluator,
        state: ServiceState,
        default_message: str = DEFAULT_REJECTION_MESSAGE,
        kind: str = ACCESS_REQUEST_KIND,
        denied_cache_size: int = DENIED_REQUEST_CACHE_SIZE,
    ) -> None:
        self._credentials = credentials
        self._evaluator = evaluator
        self._state = state
        self._default_message = default_message or DEFAULT_REJECTION_MESSAGE
        self._kind = kind
        self._denied: OrderedDict[str, None] = OrderedDict()
        self._denied_cache_size = denied_cache_size

    async def run(self) -> None:
        """Subscribe, replay pending requests, then review events until cancelled.

        Raises:
            WatchConnectionError: If a subscription cannot be opened or its
                stream ends. Connectivity is marked unhealthy first.
        """
        try:
            await self._run()
        except WatchConnectionError as e:
            self._state.mark_connected(False)
            _logger.error(
                {
                    "event": "watch_failed",
                    "message": f"Watch for {self._kind} stopped: {e}",
                    "failure_type": e.failure_type,
                }
            )
            raise

    async def _run(self) -> None:
        context = self._credentials.current
        stream = await self._subscribe(context)
        event_task: asyncio.Task[WatchEvent | None] | None = None
        update_task: asyncio.Task[ConnectionContext] | None = None
        try:
            await self.replay_pending(context)

            while True:
                if event_task is None:
                    event_task = asyncio.create_task(self._next_event(stream))
                if update_task is None:
                    update_task = asyncio.create_task(self._credentials.updates.get())

                await asyncio.wait({event_task, update_task}, return_when=asyncio.FIRST_COMPLETED)

                # An event already read from the old stream is handled before switching
                if event_task.done():
                    event = event_task.result()
                    event_task = None
                    if event is None:
                        raise WatchConnectionError(f"Watch stream for {self._kind} ended")
                    await self.handle_event(event, context)

                if update_task.done():
                    new_context = update_task.result()
                    update_task = None
                    if new_context.generation <= context.generation:
                        continue

                    new_stream = await self._subscribe(new_context)
                    old_stream, old_context = stream, context
                    stream, context = new_stream, new_context
                    try:
                        if event_task is not None:
                            late_event = await self._stop_reading(event_task)
                            event_task = None
                            if late_event is not None:
                                await self.handle_event(late_event, context)
                    finally:
                        await self._unsubscribe(old_stream, old_context)
                    _logger.info(
                        {
                            "event": "watch_resubscribed",
                            "message": f"Watch moved to connection generation {context.generation}",
                            "generation": context.generation,
                        }
                    )
                    await self.replay_pending(context)
        finally:
            pending_tasks = {task for task in (event_task, update_task) if task is not None and not task.done()}
            for task in pending_tasks:
                task.cancel()
            if pending_tasks:
                # asyncio.wait does not raise the children's cancellation
                await asyncio.wait(pending_tasks)
            await self._unsubscribe(stream, context)

    async def replay_pending(self, context: ConnectionContext) -> list[ReviewOutcome]:
        """Review every request currently pending, once each.

        A listing failure is logged and yields no outcomes.
        """
        try:
            async with context.lease() as client:
                pending = await client.list_pending(self._kind)
        except AccessPlaneError as e:
            _logger.warning(
                {
                    "event": "pending_replay_failed",
                    "message": f"Could not list pending requests: {e}",
                    "failure_type": e.failure_type,
                }
            )
            return []

        _logger.info(
            {
                "event": "pending_replay",
                "message": f"Reviewing {len(pending)} pending request(s)",
                "count": len(pending),
            }
        )
        return [await self.review(request, context) for request in pending]

    async def handle_event(self, event: WatchEvent, context: ConnectionContext) -> ReviewOutcome | None:
        """Review the request in a PUT event. Other events return None."""
        if event.type is not EventType.PUT or event.resource is None:
            return None
        if not event.resource.is_pending:
            return None
        return await self.review(event.resource, context)

    async def review(self, request: AccessRequest, context: ConnectionContext) -> ReviewOutcome:
        """Evaluate one request and deny it when a rule triggers.

        Args:
            request: Request snapshot.
            context: Connection to issue the deny on.

        Returns:
            ReviewOutcome for the request.
        """
        if not request.is_pending or request.id in self._denied:
            return ReviewOutcome(request_id=request.id, action="skipped")

        self._state.record_request_seen()
        rule = self._evaluator.decide(request)
        self._log_trace(request)

        if rule is None:
            _logger.info(
                {
                    "event": "request_left_pending",
                    "message": f"Request {request.id} matches no rule, leaving for human review",
                    "request_id": request.id,
                }
            )
            return ReviewOutcome(request_id=request.id, action="abstained")

        message = rule.message or self._default_message
        try:
            async with context.lease() as client:
                await client.set_state(request.id, RequestState.DENIED, message)
        except TransientRequestError as e:
            _logger.error(
                {
                    "event": "request_deny_failed",
                    "message": f"Failed to deny request {request.id}: {e}",
                    "request_id": request.id,
                    "rule": rule.name,
                    "failure_type": e.failure_type,
                }
            )
            return ReviewOutcome(
                request_id=request.id,
                action="deny_failed",
                rule_name=rule.name,
                message=message,
                error=str(e),
            )

        self._remember_denied(request.id)
        _logger.info(
            {
                "event": "request_denied",
                "message": f"Denied request {request.id} (rule {rule.name})",
                "request_id": request.id,
                "rule": rule.name,
                "roles": sorted(request.requested_roles),
            }
        )
        return ReviewOutcome(
            request_id=request.id,
            action="denied",
            rule_name=rule.name,
            message=message,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _subscribe(self, context: ConnectionContext) -> WatchStream:
        client = context.acquire()
        try:
            stream = await client.subscribe(self._kind)
        except AccessPlaneError as e:
            context.release()
            if isinstance(e, WatchConnectionError):
                raise
            raise WatchConnectionError(f"Cannot subscribe to {self._kind}: {e}") from e
        except BaseException:
            context.release()
            raise
        return stream

    @staticmethod
    async def _unsubscribe(stream: WatchStream, context: ConnectionContext) -> None:
        try:
            await stream.close()
        finally:
            context.release()

    @staticmethod
    async def _next_event(stream: WatchStream) -> WatchEvent | None:
        try:
            return await stream.__anext__()
        except StopAsyncIteration:
            return None
        except WatchConnectionError:
            raise
        except AccessPlaneError as e:
            raise WatchConnectionError(str(e)) from e

    @staticmethod
    async def _stop_reading(event_task: asyncio.Task[WatchEvent | None]) -> WatchEvent | None:
        """Cancel a pending read on the old stream.

        Returns the event if the read completed before it could be cancelled.
        A failure of the old stream no longer matters and is dropped.
        """
        event_task.cancel()
        await asyncio.wait({event_task})
        if event_task.cancelled() or event_task.exception() is not None:
            return None
        return event_task.result()

    def _remember_denied(self, request_id: str) -> None:
        self._denied[request_id] = None
        while len(self._denied) > self._denied_cache_size:
            self._denied.popitem(last=False)

    def _log_trace(self, request: AccessRequest) -> None:
        if not _logger.isEnabledFor(logging.DEBUG):
            return
        for trace in self._evaluator.explain(request):
            _logger.debug(
                {
                    "event": "rule_evaluated",
                    "message": f"Request {request.id}: rule {trace.rule.name} {trace.outcome}",
                    "request_id": request.id,
                    "rule": trace.rule.name,
                    "outcome": trace.outcome,
                    "matched_role": trace.matched_role,
                }
            )
