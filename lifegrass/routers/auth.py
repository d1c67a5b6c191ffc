from fastapi import APIRouter, Depends

from lifegrass.errors import InvalidInput, Unauthorized
from lifegrass.schemas import ExistsResponse, LoginRequest, RegisterRequest, TokenResponse
from lifegrass.services.credentials import CredentialStore
from lifegrass.services.user_state import UserStateRepository
from lifegrass.users import get_credentials, get_repository, path_username
from lifegrass.utils import normalize_username

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/check/{username}", response_model=ExistsResponse)
async def check_user(
    name: str = Depends(path_username),
    repository: UserStateRepository = Depends(get_repository),
):
    return ExistsResponse(exists=await repository.exists(name))


@router.post("/register", response_model=TokenResponse)
async def register(
    body: RegisterRequest,
    credentials: CredentialStore = Depends(get_credentials),
):
    token = await credentials.register(body.username, body.password, birth_year=body.birth_year)
    return TokenResponse(token=token)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    credentials: CredentialStore = Depends(get_credentials),
):
    if not normalize_username(body.username):
        raise InvalidInput("Invalid username")
    if not body.password:
        raise InvalidInput("Password required")
    token = await credentials.login(body.username, body.password)
    if not token:
        raise Unauthorized("Invalid password")
    return TokenResponse(token=token)
