# services/credentials.py
import logging
from typing import Optional

from passlib.context import CryptContext

from lifegrass.background import run_sync
from lifegrass.errors import Conflict, InvalidInput
from lifegrass.schemas import MAX_BIRTH_YEAR, MIN_BIRTH_YEAR, UserState
from lifegrass.services.tokens import TokenStrategy
from lifegrass.services.user_state import UserStateRepository
from lifegrass.utils import normalize_username

logger = logging.getLogger(__name__)

MIN_USERNAME_LEN = 2
MIN_PASSWORD_LEN = 4

# salted, iterated; verification is constant-time inside passlib
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class CredentialStore:
    """Registration and password checks against the per-user document."""

    def __init__(self, repository: UserStateRepository, tokens: TokenStrategy,
                 hasher: CryptContext = pwd_context):
        self.repository = repository
        self.tokens = tokens
        self.hasher = hasher

    async def register(self, username: str, password: str,
                       birth_year: Optional[int] = None) -> str:
        """Create the account and return a bearer token for it."""
        name = normalize_username(username)
        if len(name) < MIN_USERNAME_LEN:
            raise InvalidInput("Username must be at least 2 characters")
        if not password or len(password) < MIN_PASSWORD_LEN:
            raise InvalidInput("Password must be at least 4 characters")
        if birth_year is not None and not (MIN_BIRTH_YEAR <= birth_year <= MAX_BIRTH_YEAR):
            raise InvalidInput("Birth year must be between 1920 and 2020")

        if await self.repository.exists(name):
            raise Conflict()

        password_hash = await run_sync(self.hasher.hash, password)
        # create-only write; a concurrent registration of the same name loses with Conflict
        await self.repository.create(name, UserState(birth_year=birth_year), password_hash)
        logger.info("User %s registered", name)
        return self.tokens.issue(name)

    async def verify(self, username: str, password: str) -> bool:
        name = normalize_username(username)
        if not name or not password:
            return False
        record = await self.repository.find(name)
        if record is None or not record.password_hash:
            return False
        try:
            return await run_sync(self.hasher.verify, password, record.password_hash)
        except ValueError:
            # stored hash is not one the context understands
            logger.warning("Unrecognized credential format for %s", name)
            return False

    async def login(self, username: str, password: str) -> Optional[str]:
        """Bearer token when the password matches, else ``None``."""
        if not await self.verify(username, password):
            logger.info("Failed login for %s", normalize_username(username))
            return None
        return self.tokens.issue(normalize_username(username))
