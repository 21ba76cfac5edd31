from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

from accounts import ClientAccount


class AccountRepository(ABC):
    @abstractmethod
    def get_or_create(self, client_id: int) -> ClientAccount:
        """Get the account for a client, creating it on first reference."""
        pass

    @abstractmethod
    def get(self, client_id: int) -> Optional[ClientAccount]:
        """Get an account. Returns None if the client has never been seen."""
        pass

    @abstractmethod
    def all_accounts(self) -> Iterator[ClientAccount]:
        """Iterate over every known account."""
        pass

    @abstractmethod
    def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass


class InMemoryAccountRepository(AccountRepository):
    def __init__(self):
        self.accounts: Dict[int, ClientAccount] = {}

    def get_or_create(self, client_id: int) -> ClientAccount:
        account = self.accounts.get(client_id)
        if account is None:
            account = ClientAccount(client_id)
            self.accounts[client_id] = account
        return account

    def get(self, client_id: int) -> Optional[ClientAccount]:
        return self.accounts.get(client_id)

    def all_accounts(self) -> Iterator[ClientAccount]:
        return iter(list(self.accounts.values()))

    def get_accounts_count(self) -> int:
        return len(self.accounts)


def get_account_repository() -> AccountRepository:
    return InMemoryAccountRepository()
