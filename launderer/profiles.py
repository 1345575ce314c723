"""Profile service - user profiles and saved addresses"""

import logging

from sqlalchemy.orm import Session

from launderer.auth import Identity, find_user
from launderer.errors import NotFoundError
from launderer.models import User
from launderer.schemas import ProfileRequest, SavedAddress

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, identity: Identity) -> User:
        user = find_user(self.db, identity)
        if not user:
            raise NotFoundError("Profile not found")
        return user

    def upsert_profile(self, identity: Identity, data: ProfileRequest) -> User:
        """Create the profile on first write, otherwise update the provided fields."""
        user = find_user(self.db, identity)
        if user is None:
            user = User(clerk_id=identity.clerk_id, saved_addresses=[])
            self.db.add(user)
            logger.info(f"Creating profile for {identity.clerk_id}")
        self._apply(user, data)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_profile(self, identity: Identity, data: ProfileRequest) -> User:
        user = self.get_profile(identity)
        self._apply(user, data)
        self.db.commit()
        self.db.refresh(user)
        return user

    def add_address(self, identity: Identity, address: SavedAddress) -> User:
        user = self.get_profile(identity)
        # Assign a new list so the JSON column is flagged dirty
        user.saved_addresses = [*(user.saved_addresses or []), address.model_dump(exclude_none=True)]
        self.db.commit()
        self.db.refresh(user)
        return user

    def remove_address(self, identity: Identity, index: int) -> User:
        """Remove a saved address by position; an index past the end changes nothing."""
        user = self.get_profile(identity)
        user.saved_addresses = [a for i, a in enumerate(user.saved_addresses or []) if i != index]
        self.db.commit()
        self.db.refresh(user)
        return user

    @staticmethod
    def _apply(user: User, data: ProfileRequest) -> None:
        if data.name is not None:
            user.name = data.name
        if data.phone is not None:
            user.phone = data.phone
        if data.defaultAddress is not None:
            user.default_address = data.defaultAddress.model_dump(exclude_none=True)
