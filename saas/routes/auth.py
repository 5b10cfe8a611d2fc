"""
Authentication Routes

POST /api/auth/register         → create an active user with no groups
POST /api/auth/login            → credentials → access + refresh token (also set as cookies)
POST /api/auth/refresh          → refresh token → new access token
GET  /api/auth/verify           → claims of the presented access token
POST /api/auth/logout           → clear the token cookies
POST /api/auth/change-password  → replace the current user's password (token required)

Logout is client-side only: issued tokens stay valid until they expire.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from saas.auth import get_current_claims
from saas.constants.auth import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE
from saas.dependencies import get_tenant, get_tenant_db, get_token_service
from saas.exceptions import InvalidRefreshTokenError
from saas.schemas.token import LoginRequest, RefreshRequest, Token, TokenClaimsResponse
from saas.schemas.user import ChangePasswordRequest, RegisterRequest, UserResponse
from saas.services.token_service import TokenClaims, TokenService
from saas.services.user_service import UserService

router = APIRouter(tags=["Auth"])
logger = logging.getLogger(__name__)


def _set_cookie(response: Response, key: str, value: str, max_age: int) -> None:
    response.set_cookie(key=key, value=value, httponly=True, samesite="lax", max_age=max_age)


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
async def register(
    payload: RegisterRequest,
    tenant: str = Depends(get_tenant),
    db: AsyncSession = Depends(get_tenant_db),
) -> UserResponse:
    user = await UserService(db).create_user(
        username=payload.username,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    logger.info("User %s registered in tenant %s", user.id, tenant)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=Token)
async def login(
    payload: LoginRequest,
    response: Response,
    tenant: str = Depends(get_tenant),
    db: AsyncSession = Depends(get_tenant_db),
    token_service: TokenService = Depends(get_token_service),
) -> Token:
    user = await UserService(db).authenticate(payload.login, payload.password)
    pair = token_service.issue_tokens(user.id, tenant)

    _set_cookie(response, ACCESS_TOKEN_COOKIE, pair.access_token, token_service.access.lifetime)
    _set_cookie(response, REFRESH_TOKEN_COOKIE, pair.refresh_token, token_service.refresh_profile.lifetime)
    logger.info("User %s logged in to tenant %s", user.id, tenant)
    return Token(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


@router.post("/refresh", response_model=Token)
async def refresh(
    request: Request,
    response: Response,
    payload: RefreshRequest | None = None,
    token_service: TokenService = Depends(get_token_service),
) -> Token:
    refresh_token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not refresh_token:
        raise InvalidRefreshTokenError("Refresh token is required", reason="missing")

    access_token = token_service.refresh(refresh_token)
    _set_cookie(response, ACCESS_TOKEN_COOKIE, access_token, token_service.access.lifetime)
    return Token(access_token=access_token, expires_in=token_service.access.lifetime)


@router.get("/verify", response_model=TokenClaimsResponse)
async def verify(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaimsResponse:
    return TokenClaimsResponse(
        user_id=claims.user_id,
        tenant_id=claims.tenant_id,
        issuer=claims.issuer,
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
        not_before=claims.not_before,
    )


@router.post("/logout")
async def logout(response: Response) -> dict:
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    response.delete_cookie(REFRESH_TOKEN_COOKIE)
    return {"message": "Logged out"}


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_tenant_db),
) -> dict:
    await UserService(db).change_password(claims.user_id, payload.current_password, payload.new_password)
    return {"message": "Password changed"}
