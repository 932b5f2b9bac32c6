"""User service for business logic."""

import structlog

from app.core.redis_client import utcnow
from app.models.users import UserDocument, user_path
from app.schemas.users import UserUpdate
from app.store import DocumentStore

logger = structlog.get_logger(__name__)


class UserService:
    """Service for user profile operations.

    Profiles are not cached: ``currentTable`` changes under the table
    lifecycle and a cached copy would go stale within seconds.
    """

    def __init__(self, store: DocumentStore):
        """Initialize service with a document store."""
        self.store = store

    async def create_user(self, uid: str, email: str | None, display_name: str | None) -> UserDocument:
        """Create the profile document of a newly registered user."""
        user = UserDocument(
            id=uid,
            display_name=display_name,
            email=email,
            current_table=None,
            table_history=[],
            created_at=utcnow(),
        )
        await self.store.set(user_path(uid), user.to_document())
        logger.info("user_created", user_id=uid)
        return user

    async def get_user(self, uid: str) -> UserDocument | None:
        """Get a user profile by Firebase uid."""
        document = await self.store.get(user_path(uid))
        if document is None:
            return None
        return UserDocument.from_document(document)

    async def get_or_create_user(
        self, uid: str, email: str | None, display_name: str | None = None
    ) -> UserDocument:
        """Get an existing profile or create one for a first sign-in."""
        user = await self.get_user(uid)
        if user:
            return user
        return await self.create_user(uid, email, display_name or email)

    async def update_user(self, uid: str, user_data: UserUpdate) -> UserDocument | None:
        """Update user profile."""
        user = await self.get_user(uid)
        if user is None:
            return None

        update_data = user_data.model_dump(exclude_unset=True)
        if not update_data:
            return user

        changes = {}
        if update_data.get("display_name"):
            changes["displayName"] = update_data["display_name"].strip()
        if changes:
            await self.store.update(user_path(uid), changes)
            logger.info("user_updated", user_id=uid, fields=sorted(changes))

        return await self.get_user(uid)

    async def delete_user(self, uid: str) -> bool:
        """Delete a user profile document."""
        if await self.get_user(uid) is None:
            return False
        await self.store.delete(user_path(uid))
        logger.info("user_deleted", user_id=uid)
        return True
