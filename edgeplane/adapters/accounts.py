"""Account resolution for account-scoped resource kinds."""

import logging
import threading
from typing import List, Optional, Protocol

from edgeplane.errors import AccountResolutionError, TransientError, classify_exception

logger = logging.getLogger(__name__)


class AccountsClient(Protocol):
    def list_accounts(self) -> List[dict]: ...


class AccountResolver:
    """
    Resolves the account id that account-scoped calls are made against.

    A configured id wins. Otherwise the first account visible to the
    credentials is used and cached. There is no fallback id: when nothing
    can be resolved the caller gets AccountResolutionError.
    """

    def __init__(self, client: AccountsClient, account_id: Optional[str] = None):
        self._client = client
        self._configured = account_id or None
        self._account_id = self._configured
        self._lock = threading.Lock()

    def resolve(self) -> str:
        with self._lock:
            if self._account_id:
                return self._account_id

            try:
                accounts = self._client.list_accounts()
            except Exception as e:
                classified = classify_exception(e)
                if isinstance(classified, TransientError):
                    raise classified from e
                raise AccountResolutionError(f"cannot list accounts: {classified}") from e

            if not accounts:
                raise AccountResolutionError("no accounts visible to the configured credentials")

            account_id = accounts[0].get("id")
            if not account_id:
                raise AccountResolutionError("account listing returned an entry without an id")

            if len(accounts) > 1:
                logger.warning(
                    "%d accounts visible, using the first (%s); configure an account id to choose",
                    len(accounts), account_id,
                )
            self._account_id = account_id
            return account_id

    def reset(self) -> None:
        """Forget a discovered account id."""
        with self._lock:
            self._account_id = self._configured
