import logging

from fastapi import APIRouter, Depends

from lifegrass.schemas import OkResponse, UsersResponse
from lifegrass.services.user_state import UserStateRepository
from lifegrass.users import get_repository, path_username

logger = logging.getLogger(__name__)

# No auth on admin routes; exposure is limited by the CORS origin list.
router = APIRouter(tags=["admin"])


@router.get("/api/users", response_model=UsersResponse)
async def list_users(repository: UserStateRepository = Depends(get_repository)):
    return UsersResponse(users=await repository.list_all())


@router.get("/api/admin/data/{username}")
async def admin_read_user(
    name: str = Depends(path_username),
    repository: UserStateRepository = Depends(get_repository),
):
    record = await repository.load(name)
    return record.public_document()


@router.delete("/api/data/{username}", response_model=OkResponse)
async def delete_user(
    name: str = Depends(path_username),
    repository: UserStateRepository = Depends(get_repository),
):
    await repository.delete(name)
    logger.info("User %s deleted", name)
    return OkResponse()
