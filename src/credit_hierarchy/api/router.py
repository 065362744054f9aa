from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Body, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from ..config import Settings
from ..models.account import AccountRole
from ..models.api_models import (
    CommissionChangeRequest,
    CreateAdminRequest,
    CreateSubAdminRequest,
    CreateUserRequest,
    LoginRequest,
    NameChangeRequest,
    OperationResponse,
    PasswordChangeRequest,
    UsernameChangeRequest,
)
from ..services.account_service import AccountCreationService, CreationResult
from ..services.auth_service import AuthContext, AuthorizationGate
from ..services.mutation_service import FieldMutationService, MutationResult
from ..services.profile_service import ProfileResult, ProfileService, ProfileView


@dataclass
class Services:
    settings: Settings
    gate: AuthorizationGate
    accounts: AccountCreationService
    mutations: FieldMutationService
    profiles: ProfileService


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_role(role: AccountRole) -> Callable[..., Awaitable[AuthContext]]:
    """Dependency resolving the session cookie into a caller of `role`."""

    async def dependency(
        request: Request, services: Services = Depends(get_services)
    ) -> AuthContext:
        token = request.cookies.get(services.settings.cookie_name)
        return await services.gate.authorize(token, role)

    return dependency


require_admin = require_role(AccountRole.ADMIN)
require_subadmin = require_role(AccountRole.SUBADMIN)
require_user = require_role(AccountRole.USER)


router = APIRouter()


def _creation_response(result: CreationResult) -> JSONResponse:
    code = status.HTTP_201_CREATED if result.committed else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


def _mutation_response(result: MutationResult) -> JSONResponse:
    code = status.HTTP_200_OK if result.committed else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


def _profile_response(result: ProfileResult) -> JSONResponse:
    code = status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


@router.post("/auth/login", response_model=OperationResponse, tags=["auth"])
async def login(
    payload: LoginRequest,
    response: Response,
    services: Services = Depends(get_services),
) -> OperationResponse:
    token = await services.gate.login(payload.username, payload.password)
    response.set_cookie(
        services.settings.cookie_name,
        token,
        httponly=True,
        secure=services.settings.cookie_secure,
        samesite="lax",
    )
    return OperationResponse(success=True, message="Logged in")


@router.post("/signup/admin", tags=["accounts"])
async def signup_admin(
    payload: CreateAdminRequest,
    caller: AuthContext = Depends(require_admin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    return _creation_response(await services.accounts.create_admin(caller, payload))


@router.post("/signup/subadmin", tags=["accounts"])
async def signup_subadmin(
    payload: CreateSubAdminRequest,
    caller: AuthContext = Depends(require_admin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    return _creation_response(await services.accounts.create_subadmin(caller, payload))


@router.post("/signup/user", tags=["accounts"])
async def signup_user(
    payload: CreateUserRequest,
    caller: AuthContext = Depends(require_subadmin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    return _creation_response(await services.accounts.create_user(caller, payload))


@router.put("/admin/{uuid}", tags=["accounts"])
async def update_admin(
    uuid: str,
    changes: Dict[str, Any] = Body(...),
    caller: AuthContext = Depends(require_admin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    result = await services.mutations.update_account(caller, AccountRole.ADMIN, uuid, changes)
    return _mutation_response(result)


@router.put("/subadmin/{uuid}", tags=["accounts"])
async def update_subadmin(
    uuid: str,
    changes: Dict[str, Any] = Body(...),
    caller: AuthContext = Depends(require_admin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    result = await services.mutations.update_account(
        caller, AccountRole.SUBADMIN, uuid, changes
    )
    return _mutation_response(result)


@router.put("/user/{uuid}", tags=["accounts"])
async def update_user(
    uuid: str,
    changes: Dict[str, Any] = Body(...),
    caller: AuthContext = Depends(require_subadmin),
    services: Services = Depends(get_services),
) -> JSONResponse:
    result = await services.mutations.update_account(caller, AccountRole.USER, uuid, changes)
    return _mutation_response(result)


@router.get("/profile", response_model=ProfileView, tags=["profile"])
async def get_profile(
    caller: AuthContext = Depends(require_user),
    services: Services = Depends(get_services),
) -> ProfileView:
    return await services.profiles.get_profile(caller)


@router.post("/profile/username", tags=["profile"])
async def change_username(
    payload: UsernameChangeRequest,
    caller: AuthContext = Depends(require_user),
    services: Services = Depends(get_services),
) -> JSONResponse:
    return _profile_response(await services.profiles.change_username(caller, payload.username))


@router.post("/profile/name", tags=["profile"])
async def change_name(
    payload: NameChangeRequest,
    caller: AuthContext = Depends(require_user),
    services: Services = Depends(get_services),
) -> JSONResponse:
    return _profile_response(await services.profiles.change_name(caller, payload.name))


@router.post("/profile/password", tags=["profile"])
async def change_password(
    payload: PasswordChangeRequest,
    caller: AuthContext = Depends(require_user),
    services: Services = Depends(get_services),
) -> JSONResponse:
    result = await services.profiles.change_password(
        caller,
        payload.current_password,
        payload.new_password,
        payload.confirm_password,
    )
    return _profile_response(result)


@router.post("/profile/commission", tags=["profile"])
async def change_commission(
    payload: CommissionChangeRequest,
    caller: AuthContext = Depends(require_user),
    services: Services = Depends(get_services),
) -> JSONResponse:
    return _profile_response(
        await services.profiles.change_commission(caller, payload.commission)
    )
