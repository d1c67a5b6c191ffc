"""Gate a user's page behind register-or-login.

One :class:`AuthFlowController` runs per page load. It asks the server
whether the name exists, reuses a cached token when the server still
accepts it, and otherwise prompts for credentials until a token is obtained
or the allowed attempts run out. ``confirm_password`` re-checks the
owner's password on an already open page before an edit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from lifegrass.client.api import ApiError
from lifegrass.client.session import AuthState, Session
from lifegrass.schemas import MAX_BIRTH_YEAR, MIN_BIRTH_YEAR

logger = logging.getLogger(__name__)

MIN_PASSWORD_LEN = 4
DEFAULT_MAX_ATTEMPTS = 5


class AuthenticationFailed(Exception):
    """No token after the allowed number of prompts."""


@dataclass
class RegistrationForm:
    password: str
    confirm: str
    birth_year: Optional[int] = None

    def problem(self) -> Optional[str]:
        if len(self.password or "") < MIN_PASSWORD_LEN:
            return f"Password must be at least {MIN_PASSWORD_LEN} characters"
        if self.password != self.confirm:
            return "Passwords do not match"
        if self.birth_year is not None and not (MIN_BIRTH_YEAR <= self.birth_year <= MAX_BIRTH_YEAR):
            return f"Birth year must be between {MIN_BIRTH_YEAR} and {MAX_BIRTH_YEAR}"
        return None


class CredentialPrompt(Protocol):
    """UI surface that collects credentials. ``error`` is the message to show, if any."""

    async def ask_registration(self, username: str, error: Optional[str]) -> RegistrationForm: ...

    async def ask_password(self, username: str, error: Optional[str]) -> str: ...


class AuthFlowController:
    def __init__(self, session: Session, prompt: CredentialPrompt, *,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.session = session
        self.prompt = prompt
        self.max_attempts = max_attempts

    async def run(self) -> AuthState:
        session = self.session
        session.state = AuthState.CHECKING_EXISTENCE
        if not await self._check_exists():
            mode = AuthState.NEEDS_REGISTRATION
        elif await self._reuse_token():
            return self._authenticated()
        else:
            mode = AuthState.NEEDS_LOGIN

        error: Optional[str] = None
        for _ in range(self.max_attempts):
            session.state = mode
            if mode is AuthState.NEEDS_REGISTRATION:
                mode, error = await self._try_register(error)
            else:
                mode, error = await self._try_login(error)
            if mode is AuthState.AUTHENTICATED:
                return self._authenticated()
        raise AuthenticationFailed(f"could not authenticate {session.username} after {self.max_attempts} attempts")

    def _authenticated(self) -> AuthState:
        self.session.state = AuthState.AUTHENTICATED
        logger.info("Authenticated as %s", self.session.username)
        return AuthState.AUTHENTICATED

    async def _check_exists(self) -> bool:
        session = self.session
        try:
            exists = await session.api.check_exists(session.username)
        except ApiError as e:
            # fail toward registration, never toward showing a page without credentials
            logger.warning("Existence check for %s failed: %s", session.username, e)
            exists = False
        if not exists:
            session.forget_user()
        return exists

    async def _reuse_token(self) -> bool:
        session = self.session
        token = session.token or session.cache.token()
        if not token:
            return False
        try:
            await session.api.fetch_state(session.username, token)
        except ApiError as e:
            if e.status_code == 404:
                logger.info("Account %s disappeared; clearing local data", session.username)
                session.forget_user()
            else:
                logger.info("Stored token for %s rejected (%s)", session.username, e.status_code)
                session.drop_token()
            return False
        session.token = token
        return True

    async def _try_register(self, error: Optional[str]) -> tuple[AuthState, Optional[str]]:
        session = self.session
        form = await self.prompt.ask_registration(session.username, error)
        problem = form.problem()
        if problem:
            return AuthState.NEEDS_REGISTRATION, problem
        try:
            token = await session.api.register(session.username, form.password, form.birth_year)
        except ApiError as e:
            if e.status_code == 409:
                logger.info("%s was registered meanwhile; switching to login", session.username)
                return AuthState.NEEDS_LOGIN, "This name is already taken. Enter its password."
            if e.status_code == 400:
                return AuthState.NEEDS_REGISTRATION, e.message
            logger.warning("Registration for %s failed: %s", session.username, e)
            return AuthState.NEEDS_REGISTRATION, "Server unavailable, please try again"
        session.adopt_token(token)
        if form.birth_year is not None:
            session.cache.set_birth_year(form.birth_year)
        return AuthState.AUTHENTICATED, None

    async def _try_login(self, error: Optional[str]) -> tuple[AuthState, Optional[str]]:
        session = self.session
        password = await self.prompt.ask_password(session.username, error)
        if not password:
            return AuthState.NEEDS_LOGIN, "Password required"
        try:
            token = await session.api.login(session.username, password)
        except ApiError as e:
            if e.status_code == 401:
                if not await self._still_exists():
                    logger.info("Account %s disappeared during login", session.username)
                    session.forget_user()
                    return AuthState.NEEDS_REGISTRATION, None
                return AuthState.NEEDS_LOGIN, e.message
            if e.status_code == 400:
                return AuthState.NEEDS_LOGIN, e.message
            logger.warning("Login for %s failed: %s", session.username, e)
            return AuthState.NEEDS_LOGIN, "Server unavailable, please try again"
        session.adopt_token(token)
        return AuthState.AUTHENTICATED, None

    async def confirm_password(self, password: str) -> bool:
        """Re-check the password before an edit; a fresh token replaces the old one on success."""
        session = self.session
        if not password:
            return False
        try:
            token = await session.api.login(session.username, password)
        except ApiError as e:
            logger.info("Password check for %s failed: %s", session.username, e)
            return False
        session.adopt_token(token)
        return True

    async def _still_exists(self) -> bool:
        try:
            return await self.session.api.check_exists(self.session.username)
        except ApiError:
            return True
