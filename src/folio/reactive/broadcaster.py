"""SSE broadcaster — tells connected browsers when to reload.

Each browser tab holds one subscription. A subscription remembers the
epoch its page was served at; whenever the session's epoch moves past
it, the tab gets exactly one ``folio:reload``. Several epoch increases
between two checks collapse into a single reload.

Failed builds that changed nothing are surfaced as ``folio:error`` so the
page can show an overlay while the last-good output keeps being served.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from folio.reactive.error_overlay import format_report_event

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chirp import SSEEvent

    from folio.observability.collector import BuildCollector
    from folio.reactive.session import BuildSession, SessionSnapshot


@dataclass(slots=True, eq=False)
class Subscription:
    """One connected notification client.

    Attributes:
        client_id: Unique identifier for this connection.
        epoch: Last epoch this client has been told about.
        generation: Last session generation this client has seen.
        error_pending: Whether the current failure has yet to be sent.

    """

    client_id: str
    epoch: int
    generation: int
    error_pending: bool = False


@dataclass(frozen=True, slots=True)
class Notification:
    """Something a client must be told."""

    event: Literal["reload", "error"]
    epoch: int
    data: str = field(default="")


class Broadcaster:
    """Tracks subscriptions and decides what each one is owed.

    Subscriptions are registered on the session, which owns the set of
    connected clients.

    Args:
        session: The build session to follow.
        keepalive_s: Seconds between pings on an idle connection.
        collector: Optional event collector for delivered notifications.

    """

    def __init__(
        self,
        session: BuildSession,
        *,
        keepalive_s: float = 15.0,
        collector: BuildCollector | None = None,
    ) -> None:
        self._session = session
        self._keepalive_s = keepalive_s
        self._collector = collector

    @property
    def subscriber_count(self) -> int:
        """Number of active notification connections."""
        return self._session.subscriber_count

    def subscribe(self, since: int | None = None) -> Subscription:
        """Register a client.

        Args:
            since: Epoch the client's page was served at. A client that is
                behind (or served by an earlier run of the server, whose
                epoch restarted from zero) is owed a reload right away.
                Without it, the current epoch is the baseline.

        """
        snap = self._session.snapshot()
        baseline = snap.epoch if since is None else since
        sub = Subscription(
            client_id=str(uuid.uuid4()),
            epoch=baseline,
            generation=snap.generation,
            error_pending=snap.phase == "failed",
        )
        self._session.add_subscriber(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._session.remove_subscriber(sub)

    def _pending(self, sub: Subscription, snap: SessionSnapshot) -> Notification | None:
        if snap.generation > sub.generation:
            sub.generation = snap.generation
            sub.error_pending = snap.phase == "failed"
        if snap.epoch != sub.epoch:
            sub.epoch = snap.epoch
            return Notification(event="reload", epoch=snap.epoch, data=str(snap.epoch))
        if sub.error_pending and snap.report is not None:
            sub.error_pending = False
            return Notification(
                event="error", epoch=snap.epoch, data=format_report_event(snap.report),
            )
        return None

    async def next_notification(
        self, sub: Subscription, timeout: float,
    ) -> Notification | None:
        """Wait until *sub* is owed a notification, or *timeout* passes.

        Reloads take precedence: a page about to reload would lose an
        error toast anyway, and the reloaded page re-subscribes with the
        failure still pending.

        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            note = self._pending(sub, self._session.snapshot())
            if note is not None:
                return note
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            if await self._session.wait_for_update(sub.generation, remaining) is None:
                return None

    async def client_events(self, sub: Subscription) -> AsyncIterator[SSEEvent]:
        """Async generator of SSE events for one client.

        Used as the generator for Chirp's ``EventStream``. Starts with a
        ``folio:hello`` carrying the current epoch, then yields reloads,
        errors and keep-alive pings until the client goes away.

        Catches ``CancelledError`` (client disconnect / task cancellation)
        and ``GeneratorExit`` (generator cleanup) so disconnects don't leak
        into the event loop's exception handler.

        """
        from chirp import SSEEvent

        try:
            epoch = self._session.epoch
            self._record("hello", epoch)
            yield SSEEvent(data=str(epoch), event="folio:hello", retry=2000)
            while True:
                note = await self.next_notification(sub, self._keepalive_s)
                if note is None:
                    yield SSEEvent(data=str(sub.epoch), event="folio:ping")
                    continue
                event_id = str(note.epoch) if note.event == "reload" else None
                self._record(note.event, note.epoch)
                yield SSEEvent(data=note.data, event=f"folio:{note.event}", id=event_id)
        except (asyncio.CancelledError, GeneratorExit):
            return
        finally:
            self.unsubscribe(sub)

    def _record(self, event: str, epoch: int) -> None:
        if self._collector is not None:
            self._collector.record_notification(event, epoch)
