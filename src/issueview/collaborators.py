from __future__ import annotations

from .interfaces import CollaboratorRetriever
from .logging import get_logger
from .models import Account


class CollaboratorDirectory:
    """login -> Account, unioned over every remote's assignable users.

    The directory only grows: accounts that stop being assignable stay listed.
    When the same login appears under several remotes the last one processed
    wins.
    """

    def __init__(self, retriever: CollaboratorRetriever):
        self._retriever = retriever
        self._accounts: dict[str, Account] = {}

    async def refresh(self) -> None:
        logger = get_logger()
        with logger.timed_operation("collaborators_refresh"):
            assignable = await self._retriever.get_assignable_users()
            for remote, accounts in assignable.items():
                for account in accounts:
                    self._accounts[account.login] = account
                logger.debug("collaborators merged", remote=remote, count=len(accounts))
        logger.info("collaborator directory refreshed", count=len(self._accounts))

    def lookup(self, login: str) -> Account | None:
        return self._accounts.get(login)

    def logins(self) -> list[str]:
        return sorted(self._accounts)

    def __contains__(self, login: object) -> bool:
        return login in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)
