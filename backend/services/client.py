"""
Client facade bundling the emulated data API.

    client = create_client()
    await client.auth.sign_in("a@x.com", "pw")
    rows = await client.table("diagnoses").select().eq("user_id", uid)

One client shares one persistence adapter and one session context, which
consumers receive explicitly instead of through module globals.
"""

from config.config import Settings, get_settings
from config.logging_config import get_logger
from database.kv_store import KeyValueStore, get_kv_store
from models.records import Record
from services.analysis_service import ImageAnalysisService
from services.auth_service import AuthService
from services.functions_service import Functions, FunctionsEmulator, GatewayFunctions
from services.record_store import RecordStore
from services.session_events import SessionContext
from services.storage_service import StorageService

logger = get_logger(__name__)


class LocalClient:
    """Auth, tables, storage and functions over one key-value store."""

    def __init__(
        self,
        kv: KeyValueStore,
        settings: Settings | None = None,
        functions: Functions | None = None,
    ):
        self.settings = settings or get_settings()
        self.kv = kv
        self.session = SessionContext(kv, self.settings.session_key)
        self.auth = AuthService(kv, self.session, self.settings)
        self.storage = StorageService(self.settings)
        if functions is None:
            if self.settings.use_mock_functions:
                functions = FunctionsEmulator(self.settings)
            else:
                functions = GatewayFunctions(ImageAnalysisService(self.settings))
        self.functions = functions

    def table(self, name: str) -> RecordStore[Record]:
        """Record store for the collection `name`."""
        return RecordStore(name, self.kv, self.settings)

    from_ = table


def create_client(
    settings: Settings | None = None,
    kv: KeyValueStore | None = None,
) -> LocalClient:
    """
    Build a client from settings.

    Args:
        settings: Application settings. Uses default if not provided.
        kv: Persistence adapter. Built from `storage_backend` if not provided.
    """
    settings = settings or get_settings()
    client = LocalClient(kv or get_kv_store(settings), settings)
    logger.info(
        "Local client created",
        storage_backend=settings.storage_backend,
        mock_functions=settings.use_mock_functions,
    )
    return client
