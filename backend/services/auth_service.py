"""
Emulated authentication over a persisted user list.

Sign-up, sign-in and sign-out move the session slot between signed-out
and signed-in and notify subscribers. Credential problems come back as
envelope errors; nothing here raises for expected failures.

This layer provides no security: passwords are stored and compared as
plaintext and the session token is a constant.
"""

import asyncio
from typing import Any

from pydantic import ValidationError

from config.config import Settings, get_settings
from config.logging_config import email_domain, get_logger
from database.kv_store import KeyValueStore
from models.models import AuthData, AuthEvent, Result, Session, User
from models.records import PROFILES, ProfileRecord
from services.record_store import RecordStore, generate_id
from services.session_events import Listener, SessionContext, SessionEventEmitter, Subscription

logger = get_logger(__name__)

DUPLICATE_USER_MESSAGE = "User already exists with this email"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password. Please sign up first."


class AuthService:
    """
    Session/auth emulator.

    All mutating calls wait `auth_delay` (sign-out: `sign_out_delay`) before
    doing their work, so callers see realistic loading states.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        context: SessionContext,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.context = context
        self.events = SessionEventEmitter(context)
        self._kv = kv
        self._profiles: RecordStore[ProfileRecord] = RecordStore(PROFILES, kv, self.settings)

    def _read_user_entries(self) -> list[dict[str, Any]]:
        return self._kv.read(self.settings.users_key) or []

    def _load_users(self) -> list[User]:
        """Valid users; malformed persisted entries are skipped with a warning."""
        users = []
        for position, raw in enumerate(self._read_user_entries()):
            try:
                users.append(User.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping unreadable user entry", position=position, error=str(e))
        return users

    def _start_session(self, user: User) -> Session:
        session = Session(user=user)
        self.context.set(session)
        self.events.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(
        self,
        email: str,
        password: str,
        data: dict[str, Any] | None = None,
    ) -> Result[AuthData]:
        """
        Register a user, sign them in and create their profile record.

        Args:
            email: Unique email address.
            password: Password, stored as given.
            data: Profile fields; `display_name` defaults to the email's
                local part.
        """
        await asyncio.sleep(self.settings.auth_delay)

        entries = self._read_user_entries()
        # Malformed entries still reserve their email.
        if any(isinstance(entry, dict) and entry.get("email") == email for entry in entries):
            logger.info("Sign-up rejected: duplicate email", email_domain=email_domain(email))
            return Result.failure(DUPLICATE_USER_MESSAGE)

        metadata = dict(data or {})
        user = User(id=generate_id(), email=email, password=password, user_metadata=metadata)
        entries.append(user.model_dump(mode="json"))
        self._kv.write(self.settings.users_key, entries)

        self._profiles.append({
            "user_id": user.id,
            "display_name": metadata.get("display_name") or email.split("@")[0],
        })

        session = self._start_session(user)
        logger.info("User signed up", user_id=user.id, email_domain=email_domain(email))
        return Result(data=AuthData(user=user, session=session))

    async def sign_in(self, email: str, password: str) -> Result[AuthData]:
        """Sign in with an exact email and password match."""
        await asyncio.sleep(self.settings.auth_delay)

        user = next(
            (u for u in self._load_users() if u.email == email and u.password == password),
            None,
        )
        if user is None:
            logger.info("Sign-in rejected", email_domain=email_domain(email))
            return Result.failure(INVALID_CREDENTIALS_MESSAGE)

        session = self._start_session(user)
        logger.info("User signed in", user_id=user.id)
        return Result(data=AuthData(user=user, session=session))

    async def sign_out(self) -> Result[None]:
        """Clear the session. Always succeeds."""
        await asyncio.sleep(self.settings.sign_out_delay)
        self.context.clear()
        self.events.emit(AuthEvent.SIGNED_OUT, None)
        logger.info("User signed out")
        return Result(data=None)

    async def get_session(self) -> Result[Session]:
        """Current session (or None), resolved without latency."""
        return Result(data=self.context.current)

    def subscribe(self, listener: Listener) -> Subscription:
        """
        Register a session-change listener.

        The listener is called once with `INITIAL_SESSION` and the current
        session before this returns, then with every later event until
        unsubscribed.
        """
        return self.events.subscribe(listener)
