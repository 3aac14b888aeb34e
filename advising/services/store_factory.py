"""Backend selection for the student store.

Called once from the application lifespan (and by the CLI). Firestore is
used when its settings are present and a client can be built; otherwise
the process runs on the in-memory store for its whole lifetime.
"""

import logging
import os
from collections.abc import Callable
from typing import Any

from advising.core.config import Settings, settings
from advising.services.firestore_store import FirestoreStudentStore
from advising.services.memory_store import InMemoryStudentStore
from advising.services.student_store import StudentStore

logger = logging.getLogger(__name__)


class FirestoreConfigurationError(Exception):
    """Firestore settings are incomplete."""

    pass


def build_firestore_client(config: Settings = settings) -> Any:
    """
    Create a Firestore ``AsyncClient`` from service-account settings.

    With ``FIRESTORE_EMULATOR_HOST`` set, anonymous credentials are used and
    only the project id is required.

    Raises:
        FirestoreConfigurationError: Required settings are missing
    """
    missing = config.firestore_missing_keys
    if missing:
        raise FirestoreConfigurationError(
            f"Missing Firestore settings: {', '.join(missing)}"
        )

    from google.auth.credentials import AnonymousCredentials
    from google.cloud import firestore
    from google.oauth2 import service_account

    if config.FIRESTORE_EMULATOR_HOST:
        # The client library reads the emulator address from the environment
        os.environ.setdefault("FIRESTORE_EMULATOR_HOST", config.FIRESTORE_EMULATOR_HOST)
        credentials = AnonymousCredentials()
    else:
        credentials = service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "project_id": config.FIREBASE_PROJECT_ID,
                "client_email": config.FIREBASE_CLIENT_EMAIL,
                "private_key": config.firestore_private_key,
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        )

    return firestore.AsyncClient(
        project=config.FIREBASE_PROJECT_ID,
        credentials=credentials,
        database=config.FIRESTORE_DATABASE,
    )


def build_student_store(
    config: Settings = settings,
    client_factory: Callable[[Settings], Any] = build_firestore_client,
) -> StudentStore:
    """Resolve the student store for this process."""
    if not config.firestore_configured:
        logger.info(
            "Firestore not configured; using in-memory student store "
            f"(missing: {', '.join(config.firestore_missing_keys)})"
        )
        return InMemoryStudentStore.from_seed()

    try:
        client = client_factory(config)
    except Exception as e:
        logger.warning(f"Firestore client unavailable, using in-memory student store: {e}")
        return InMemoryStudentStore.from_seed()

    logger.info(f"Using Firestore student store (project {config.FIREBASE_PROJECT_ID})")
    return FirestoreStudentStore(client)
