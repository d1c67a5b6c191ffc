import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import InvalidInput, Unauthorized
from .llm_client import TextServiceClient
from .services.credentials import CredentialStore
from .services.tokens import TokenStrategy
from .services.user_state import UserStateRepository
from .utils import normalize_username

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# -------------------------
# Service Dependencies
# -------------------------
def get_repository(request: Request) -> UserStateRepository:
    return request.app.state.repository


def get_tokens(request: Request) -> TokenStrategy:
    return request.app.state.tokens


def get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_text_service(request: Request) -> TextServiceClient:
    return request.app.state.text_service


def path_username(username: str) -> str:
    name = normalize_username(username)
    if not name:
        raise InvalidInput("Invalid username")
    return name


# -------------------------
# Bearer check
# -------------------------
async def require_owner(
    name: str = Depends(path_username),
    auth: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenStrategy = Depends(get_tokens),
) -> str:
    """Normalized path username, provided the bearer token was issued to it and is unexpired."""
    token = auth.credentials if auth else None
    if not tokens.verify_for(token, name):
        raise Unauthorized()
    return name
