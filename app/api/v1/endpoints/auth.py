"""Authentication endpoints."""

from fastapi import APIRouter, status

from app.dependencies import CacheManagerDep, Store
from app.models.users import UserDocument
from app.schemas.auth import (
    AuthUser,
    FirebaseAuthRequest,
    LoginRequest,
    LoginResponse,
    SignUpRequest,
    Token,
    TokenRefresh,
)
from app.services.auth_service import AuthService
from app.services.user_service import UserService

router = APIRouter()


def _login_response(user: UserDocument, tokens: Token) -> LoginResponse:
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        user=AuthUser(uid=user.id, display_name=user.display_name, email=user.email),
    )


@router.post(
    "/signup",
    response_model=LoginResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Authentication"],
    summary="Register with email and password",
)
async def sign_up(
    request: SignUpRequest,
    store: Store,
    cache_manager: CacheManagerDep,
) -> LoginResponse:
    """
    Create a Firebase account and its user profile, then return JWT tokens.

    New profiles start with no current table and an empty table history.
    """
    auth_service = AuthService(cache_manager, UserService(store))
    user, tokens = await auth_service.sign_up(request)
    return _login_response(user, tokens)


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Sign in with email and password",
)
async def login(
    request: LoginRequest,
    store: Store,
    cache_manager: CacheManagerDep,
) -> LoginResponse:
    """Sign in through Firebase and return JWT tokens."""
    auth_service = AuthService(cache_manager, UserService(store))
    user, tokens = await auth_service.sign_in(request)
    return _login_response(user, tokens)


@router.post(
    "/firebase/verify",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Firebase ID token verification",
)
async def firebase_verify(
    request: FirebaseAuthRequest,
    store: Store,
    cache_manager: CacheManagerDep,
) -> LoginResponse:
    """
    Verify a Firebase ID token and return JWT tokens.

    For clients that sign in with the Firebase SDK directly. The profile is
    created on first sign-in.

    Args:
        request: Firebase ID token
        store: Document store
        cache_manager: Cache for the token blacklist

    Returns:
        Access token, refresh token, and user information
    """
    auth_service = AuthService(cache_manager, UserService(store))

    firebase_token_data = await auth_service.verify_firebase_id_token(request.id_token)
    user, tokens = await auth_service.handle_firebase_login(firebase_token_data)
    return _login_response(user, tokens)


@router.post(
    "/refresh",
    response_model=Token,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Refresh access token",
)
async def refresh_token(
    request: TokenRefresh,
    store: Store,
    cache_manager: CacheManagerDep,
) -> Token:
    """
    Refresh access token using refresh token.

    Raises:
        UnauthorizedException: If the refresh token is invalid or revoked
    """
    auth_service = AuthService(cache_manager, UserService(store))
    return auth_service.refresh_access_token(request.refresh_token)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Authentication"],
    summary="Logout and revoke tokens",
)
async def logout(
    request: TokenRefresh,
    store: Store,
    cache_manager: CacheManagerDep,
) -> None:
    """
    Logout user by revoking refresh token.

    Args:
        request: Refresh token to revoke
        store: Document store
        cache_manager: Cache for the token blacklist
    """
    auth_service = AuthService(cache_manager, UserService(store))
    auth_service.revoke_token(request.refresh_token)
