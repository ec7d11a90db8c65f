"""FastAPI application exposing the user resource."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .models import User, parse_timestamp
from .stores import (
    BackendError,
    DuplicateUserError,
    IDGenerationError,
    StoreError,
    UserNotFoundError,
    UserStore,
)

logger = logging.getLogger("usersapi.api")

USER_NOT_FOUND = "user not found"


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class UserCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(default=None, max_length=128)
    name: str = Field(..., max_length=255)
    dob: Optional[datetime] = None
    address: str = Field(default="", max_length=1024)
    description: str = Field(default="", max_length=4096)

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be empty")
        return stripped

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("dob", mode="before")
    @classmethod
    def _parse_dob(cls, value: object) -> object:
        value = _blank_to_none(value)
        if value is None:
            return None
        return parse_timestamp(value)

    @field_validator("address", "description", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return "" if value is None else value

    def to_user(self) -> User:
        return User(
            id=self.id or "",
            name=self.name,
            dob=self.dob,
            address=self.address,
            description=self.description,
        )


class UserUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(default=None, max_length=255)
    dob: Optional[datetime] = None
    address: Optional[str] = Field(default=None, max_length=1024)
    description: Optional[str] = Field(default=None, max_length=4096)

    @field_validator("name", "address", "description", mode="before")
    @classmethod
    def _blank_means_unchanged(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("dob", mode="before")
    @classmethod
    def _parse_dob(cls, value: object) -> object:
        value = _blank_to_none(value)
        if value is None:
            return None
        return parse_timestamp(value)

    def changes(self) -> Dict[str, object]:
        """Return only the fields the client actually supplied."""
        supplied = self.model_dump(exclude_unset=True)
        return {name: value for name, value in supplied.items() if value is not None}


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str
    dob: Optional[datetime] = None
    address: str = ""
    description: str = ""
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id or None,
        name=user.name,
        dob=user.dob,
        address=user.address,
        description=user.description,
        created_at=user.created_at,
    )


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework-level errors such as 404 and 405 as message bodies."""
    response = _message(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def create_app(*, store: UserStore) -> FastAPI:
    app = FastAPI(
        title="Users API",
        description="CRUD service for user records",
        version="1.0.0",
    )
    app.state.store = store

    def get_store() -> UserStore:
        return store

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok", "store": store.kind}

    router = APIRouter(prefix="/users")

    @router.get("", response_model=List[UserResponse], response_model_exclude_none=True)
    async def list_users(users: UserStore = Depends(get_store)) -> List[UserResponse]:
        return [user_to_response(user) for user in users.list()]

    @router.get("/{user_id}", response_model=UserResponse, response_model_exclude_none=True)
    async def read_user(user_id: str, users: UserStore = Depends(get_store)) -> UserResponse:
        return user_to_response(users.get(user_id))

    @router.post(
        "",
        response_model=UserResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_user(payload: UserCreateRequest, users: UserStore = Depends(get_store)) -> UserResponse:
        created = users.create(payload.to_user())
        return user_to_response(created)

    @router.patch(
        "/{user_id}",
        response_model=UserResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_206_PARTIAL_CONTENT,
    )
    async def update_user(
        user_id: str,
        payload: UserUpdateRequest,
        users: UserStore = Depends(get_store),
    ) -> UserResponse:
        try:
            updated = users.update(user_id, payload.changes())
        except BackendError as exc:
            logger.warning("Backend rejected update of user %s: %s", user_id, exc)
            raise UserNotFoundError(user_id) from exc
        return user_to_response(updated)

    @router.delete(
        "/{user_id}",
        response_model=UserResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def delete_user(user_id: str, users: UserStore = Depends(get_store)) -> UserResponse:
        return user_to_response(users.delete(user_id))

    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        if request.method == "POST":
            return _message(status.HTTP_406_NOT_ACCEPTABLE, "Invalid JSON!")
        return _message(status.HTTP_400_BAD_REQUEST, "Invalid JSON!")

    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    @app.exception_handler(UserNotFoundError)
    async def handle_not_found(_: Request, exc: UserNotFoundError):
        return _message(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND)

    @app.exception_handler(DuplicateUserError)
    async def handle_duplicate(_: Request, exc: DuplicateUserError):
        return _message(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(IDGenerationError)
    async def handle_id_generation_error(_: Request, exc: IDGenerationError):
        logger.warning("Id generation failed: %s", exc.__cause__ or exc)
        return _message(status.HTTP_500_INTERNAL_SERVER_ERROR, "Unable to generate an id for the user!")

    @app.exception_handler(StoreError)
    async def handle_store_error(_: Request, exc: StoreError):
        logger.warning("Store operation failed: %s", exc)
        return _message(status.HTTP_500_INTERNAL_SERVER_ERROR, "Unable to reach the user store!")

    return app


__all__ = [
    "UserCreateRequest",
    "UserResponse",
    "UserUpdateRequest",
    "create_app",
    "http_error_handler",
    "user_to_response",
]
