"""User API.

Implements:
- POST /users - Create user (and processor customer)
- GET /users - List users
- GET /users/{id} - Get user
- PATCH /users/{id} - Update email or name
- DELETE /users/{id} - Delete user
"""

from fastapi import APIRouter, Depends, Response

from subscription_manager.logging_config import get_logger
from subscription_manager.models import (
    CreateUserRequest,
    ErrorResponse,
    UpdateUserRequest,
    UserRecord,
)
from subscription_manager.services.user_directory import UserDirectory, get_user_directory

logger = get_logger(__name__)
router = APIRouter(tags=["Users"], prefix="/users")

NOT_FOUND = {404: {"model": ErrorResponse, "description": "User not found"}}


@router.post(
    "",
    response_model=UserRecord,
    status_code=201,
    summary="Create user",
    responses={409: {"model": ErrorResponse, "description": "Email already registered"}},
)
def create_user(
    request: CreateUserRequest,
    directory: UserDirectory = Depends(get_user_directory),
) -> UserRecord:
    logger.info("create_user_request", email=request.email)
    return directory.create_user(request.email, request.name)


@router.get("", response_model=list[UserRecord], summary="List users")
def list_users(directory: UserDirectory = Depends(get_user_directory)) -> list[UserRecord]:
    return directory.list_users()


@router.get("/{user_id}", response_model=UserRecord, summary="Get user", responses=NOT_FOUND)
def get_user(user_id: str, directory: UserDirectory = Depends(get_user_directory)) -> UserRecord:
    return directory.get_user(user_id)


@router.patch("/{user_id}", response_model=UserRecord, summary="Update user", responses=NOT_FOUND)
def update_user(
    user_id: str,
    request: UpdateUserRequest,
    directory: UserDirectory = Depends(get_user_directory),
) -> UserRecord:
    return directory.update_user(user_id, email=request.email, name=request.name)


@router.delete("/{user_id}", status_code=204, summary="Delete user", responses=NOT_FOUND)
def delete_user(user_id: str, directory: UserDirectory = Depends(get_user_directory)) -> Response:
    directory.delete_user(user_id)
    return Response(status_code=204)
