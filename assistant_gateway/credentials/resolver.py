import logging

from assistant_gateway.credentials.models import StoredCredential
from assistant_gateway.credentials.store import CredentialStore

logger = logging.getLogger("aigw.credentials")


class CredentialResolver:
    """Decide the active authentication mode for upstream calls.

    The persisted record wins. Without one, a key in the legacy single-string
    slot is promoted to an ``api_key`` credential. Otherwise the ``none``
    record is returned and callers must refuse to call upstream.
    """

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def resolve(self) -> StoredCredential:
        credential = self._store.get()
        if credential is not None:
            return credential
        legacy_key = self._store.get_legacy_api_key()
        if legacy_key:
            logger.debug("legacy_api_key_used", extra={"auth_method": "api_key"})
            return StoredCredential.for_api_key(legacy_key)
        return StoredCredential.none()
