"""Authentication service for Firebase and JWT."""

from datetime import timedelta

import structlog
from firebase_admin import auth

from app.config import settings
from app.core.exceptions import BadRequestException, ConflictException, UnauthorizedException
from app.core.firebase import (
    create_firebase_user,
    delete_firebase_user,
    sign_in_with_password,
    verify_firebase_token,
)
from app.core.redis_client import CacheManager
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
)
from app.models.users import UserDocument
from app.schemas.auth import AuthUser, LoginRequest, SignUpRequest, Token
from app.services.table_service import TableService
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)

ACCOUNT_DELETED_REASON = "Account deleted"


class AuthService:
    """Authentication service for handling Firebase and JWT operations."""

    def __init__(self, cache_manager: CacheManager, user_service: UserService):
        """Initialize auth service with cache manager and user service."""
        self.cache = cache_manager
        self.users = user_service

    async def verify_firebase_id_token(self, id_token: str) -> dict:
        """
        Verify Firebase ID token and extract user information.

        Args:
            id_token: Firebase ID token from the client

        Returns:
            Decoded token with user claims

        Raises:
            UnauthorizedException: If token verification fails
        """
        try:
            decoded_token = await verify_firebase_token(id_token)
            return decoded_token
        except ValueError as e:
            raise UnauthorizedException(str(e))
        except Exception as e:
            raise UnauthorizedException(f"Token verification failed: {e!s}")

    async def handle_firebase_login(self, firebase_token_data: dict) -> tuple[UserDocument, Token]:
        """
        Handle Firebase login: get or create the profile and issue tokens.

        Args:
            firebase_token_data: Decoded Firebase token with user info

        Returns:
            Tuple of (user profile, token pair)
        """
        uid = firebase_token_data["uid"]
        email = firebase_token_data.get("email")
        name = firebase_token_data.get("name") or email

        user = await self.users.get_or_create_user(uid, email, name)
        return user, self.create_tokens(uid, user.display_name)

    async def sign_up(self, data: SignUpRequest) -> tuple[UserDocument, Token]:
        """
        Register with email and password.

        Raises:
            ConflictException: Email already registered
            BadRequestException: Firebase rejected the account data
        """
        try:
            record = create_firebase_user(data.email, data.password, data.display_name)
        except auth.EmailAlreadyExistsError:
            raise ConflictException("An account with this email already exists")
        except ValueError as e:
            raise BadRequestException(str(e))

        user = await self.users.create_user(record.uid, data.email, data.display_name)
        logger.info("user_signed_up", user_id=record.uid)
        return user, self.create_tokens(record.uid, user.display_name)

    async def sign_in(self, data: LoginRequest) -> tuple[UserDocument, Token]:
        """
        Sign in with email and password.

        Raises:
            UnauthorizedException: Credentials rejected
        """
        try:
            result = await sign_in_with_password(
                data.email, data.password, settings.firebase_web_api_key
            )
        except ValueError as e:
            raise UnauthorizedException(f"Sign in failed: {e!s}")

        uid = result["localId"]
        user = await self.users.get_or_create_user(uid, data.email, result.get("displayName"))
        logger.info("user_signed_in", user_id=uid)
        return user, self.create_tokens(uid, user.display_name)

    def create_tokens(self, user_id: str, display_name: str | None = None) -> Token:
        """
        Create access and refresh tokens for a user.

        Args:
            user_id: Firebase uid
            display_name: Name carried in the token claims

        Returns:
            Token pair (access and refresh)
        """
        claims = {"sub": user_id, "name": display_name}

        access_token = create_access_token(
            data=claims,
            expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
        )

        refresh_token = create_refresh_token(
            data=claims,
            expires_delta=timedelta(days=settings.refresh_token_expire_days),
        )

        return Token(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
        )

    def refresh_access_token(self, refresh_token: str) -> Token:
        """
        Create new access token from refresh token.

        Args:
            refresh_token: Valid refresh token

        Returns:
            New token pair

        Raises:
            UnauthorizedException: If refresh token is invalid
        """
        payload = decode_refresh_token(refresh_token)

        if payload is None:
            raise UnauthorizedException("Invalid refresh token")

        user_id = payload.get("sub")
        if user_id is None:
            raise UnauthorizedException("Invalid refresh token")

        # Check if token is blacklisted
        if self.cache.exists(f"blacklist:{refresh_token}"):
            raise UnauthorizedException("Token has been revoked")

        return self.create_tokens(user_id, payload.get("name"))

    def revoke_token(self, token: str, ttl: int = 86400 * 365) -> None:
        """
        Revoke a refresh token by adding it to blacklist.

        Args:
            token: Token to revoke
            ttl: Time to live for blacklist entry (default: 365 days)
        """
        self.cache.set(f"blacklist:{token}", "1", ttl=ttl)

    async def delete_account(self, user: AuthUser, table_service: TableService) -> None:
        """
        Delete the profile and Firebase account of a user.

        A user still seated at a table leaves it first, which ends the table
        when they created it.
        """
        profile = await self.users.get_user(user.uid)
        if profile and profile.current_table:
            await table_service.leave_table(
                user,
                profile.current_table.location_id,
                profile.current_table.id,
                reason=ACCOUNT_DELETED_REASON,
            )

        await self.users.delete_user(user.uid)
        delete_firebase_user(user.uid)
        logger.info("account_deleted", user_id=user.uid)
