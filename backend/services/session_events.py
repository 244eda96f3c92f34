"""
Session state and change notifications.

`SessionContext` owns the single session slot. Storage is the source of
truth: every read of `current` loads the persisted session, so clients
sharing a store (or a file across processes) agree on who is signed in.
`SessionEventEmitter` delivers auth events to listeners and guarantees
that a new listener immediately receives `INITIAL_SESSION` with the
current session before `subscribe()` returns.
"""

from collections.abc import Callable

from pydantic import ValidationError

from config.logging_config import get_logger
from database.kv_store import KeyValueStore
from models.models import AuthEvent, Session

logger = get_logger(__name__)

Listener = Callable[[AuthEvent, Session | None], None]


class SessionContext:
    """Process-scoped holder of the current session, backed by persistence."""

    def __init__(self, kv: KeyValueStore, key: str):
        self._kv = kv
        self.key = key

    @property
    def current(self) -> Session | None:
        raw = self._kv.read(self.key)
        if raw is None:
            return None
        try:
            return Session.model_validate(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable persisted session", error=str(e))
            self._kv.remove(self.key)
            return None

    def set(self, session: Session) -> None:
        self._kv.write(self.key, session.model_dump(mode="json"))

    def clear(self) -> None:
        self._kv.remove(self.key)


class Subscription:
    """Handle returned by `subscribe()`."""

    def __init__(self, emitter: "SessionEventEmitter", listener: Listener):
        self._emitter = emitter
        self._listener = listener

    def unsubscribe(self) -> None:
        self._emitter.remove(self._listener)


class SessionEventEmitter:
    """
    Listener registry with replay-on-subscribe.

    Listeners form a set: registering the same callable twice keeps one
    registration. Delivery is synchronous. A failing listener is logged and
    does not stop delivery to the others.
    """

    def __init__(self, context: SessionContext):
        self._context = context
        self._listeners: dict[Listener, None] = {}

    def subscribe(self, listener: Listener) -> Subscription:
        self._listeners[listener] = None
        self._deliver(listener, AuthEvent.INITIAL_SESSION, self._context.current)
        return Subscription(self, listener)

    def remove(self, listener: Listener) -> None:
        self._listeners.pop(listener, None)

    def emit(self, event: AuthEvent, session: Session | None) -> None:
        logger.debug("Auth event", auth_event=event.value, listeners=len(self._listeners))
        for listener in list(self._listeners):
            self._deliver(listener, event, session)

    def _deliver(self, listener: Listener, event: AuthEvent, session: Session | None) -> None:
        try:
            listener(event, session)
        except Exception as e:
            logger.exception("Auth listener failed", auth_event=event.value, error=str(e))

    def __len__(self) -> int:
        return len(self._listeners)
