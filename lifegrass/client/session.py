import enum
from dataclasses import dataclass
from typing import Optional

from lifegrass.client.api import LifeGrassClient
from lifegrass.client.cache import KeyValueStorage, LocalCache
from lifegrass.utils import username_from_path


class AuthState(str, enum.Enum):
    CHECKING_EXISTENCE = "checking_existence"
    NEEDS_REGISTRATION = "needs_registration"
    NEEDS_LOGIN = "needs_login"
    AUTHENTICATED = "authenticated"
    SYNCED = "synced"


class MissingUsername(Exception):
    """The page path names no user; the caller should go to the landing page."""

    landing_path = "/"


@dataclass
class Session:
    """Everything one page load knows about its user, passed explicitly to the controllers."""

    username: str
    api: LifeGrassClient
    cache: LocalCache
    token: Optional[str] = None
    state: AuthState = AuthState.CHECKING_EXISTENCE

    @classmethod
    def open(cls, path: str, api: LifeGrassClient, storage: KeyValueStorage) -> "Session":
        username = username_from_path(path)
        if not username:
            raise MissingUsername(path)
        return cls(username=username, api=api, cache=LocalCache(storage, username))

    def adopt_token(self, token: str) -> None:
        self.token = token
        self.cache.save_token(token)

    def drop_token(self) -> None:
        self.token = None
        self.cache.clear_token()

    def forget_user(self) -> None:
        """Drop everything cached for this username, token included."""
        self.cache.clear()
        self.token = None
