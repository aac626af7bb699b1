from __future__ import annotations

import base64
import logging
import secrets
from typing import Any, Dict, Iterable, List, Sequence

from .api import AdminClient

LOG = logging.getLogger(__name__)

DEFAULT_BUNDLES = ("Encryption", "Compression")
ENCRYPTION_ALGORITHM = "System.Security.Cryptography.RijndaelManaged, mscorlib"
ENCRYPTION_KEY_BITS = 256


def generate_encryption_key(bits: int = ENCRYPTION_KEY_BITS) -> str:
    return base64.b64encode(secrets.token_bytes(bits // 8)).decode("ascii")


def merge_bundles(additional_bundles: Iterable[str] = ()) -> List[str]:
    bundles: List[str] = []
    for bundle in (*DEFAULT_BUNDLES, *additional_bundles):
        if bundle and bundle not in bundles:
            bundles.append(bundle)
    return bundles


def build_database_document(name: str, key: str, bundles: Sequence[str]) -> Dict[str, Any]:
    return {
        "Id": name,
        "Disabled": False,
        "Settings": {
            "Raven/DataDir": f"~\\{name}",
            "Raven/ActiveBundles": ";".join(bundles),
        },
        "SecuredSettings": {
            "Raven/Encryption/Key": key,
            "Raven/Encryption/Algorithm": ENCRYPTION_ALGORITHM,
            "Raven/Encryption/KeyBitsPreference": str(ENCRYPTION_KEY_BITS),
            "Raven/Encryption/EncryptIndexes": "True",
        },
    }


class DatabaseLifecycleManager:
    """Creates and hard-deletes restore targets on the server.

    Both operations check for existence first, so calling them twice is
    harmless. Errors from the admin client are not caught here.
    """

    def __init__(self, client: AdminClient) -> None:
        self._client = client

    def create_database(self, name: str, additional_bundles: Iterable[str] = ()) -> bool:
        if self._client.database_exists(name):
            LOG.debug("Database %s already exists; skipping create", name)
            return False

        bundles = merge_bundles(additional_bundles)
        LOG.info("Creating database %s with bundles %s", name, ", ".join(bundles))
        document = build_database_document(name, generate_encryption_key(), bundles)
        self._client.create_database(document)
        return True

    def delete_database(self, name: str) -> bool:
        if not self._client.database_exists(name):
            return False

        LOG.info("Deleting database %s", name)
        self._client.delete_database(name, hard_delete=True)
        LOG.info("Deletion complete for %s", name)
        return True
