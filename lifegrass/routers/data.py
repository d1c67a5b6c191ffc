from fastapi import APIRouter, Depends

from lifegrass.errors import NotFound
from lifegrass.schemas import OkResponse, UserState
from lifegrass.services.user_state import UserStateRepository
from lifegrass.users import get_repository, require_owner

router = APIRouter(prefix="/api/data", tags=["data"])


@router.get("/{username}")
async def read_state(
    name: str = Depends(require_owner),
    repository: UserStateRepository = Depends(get_repository),
):
    record = await repository.load(name)
    return record.state().to_wire()


@router.post("/{username}", response_model=OkResponse)
async def write_state(
    state: UserState,
    name: str = Depends(require_owner),
    repository: UserStateRepository = Depends(get_repository),
):
    # a valid token can outlive its account; do not recreate it without a credential
    if not await repository.exists(name):
        raise NotFound()
    await repository.save(name, state)
    return OkResponse()
