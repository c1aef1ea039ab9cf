"""User store - local users linked to processor customers."""

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from subscription_manager.exceptions import DuplicateUserError, NotFoundError
from subscription_manager.models.catalog import UserRecord


class UserStore:
    """Thread-safe user storage with unique email addresses."""

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._lock = threading.RLock()

    def add(self, email: str, name: Optional[str] = None,
            external_customer_id: Optional[str] = None) -> UserRecord:
        """Create a new user.

        Raises:
            DuplicateUserError: If the email is already registered
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            if self._find_by_email(email) is not None:
                raise DuplicateUserError(f"User already exists: {email}")
            user = UserRecord(
                id=uuid.uuid4().hex,
                email=email,
                name=name,
                external_customer_id=external_customer_id,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            return user

    def upsert_by_customer_id(self, external_customer_id: str, fields: Dict[str, Any]) -> UserRecord:
        """Insert or update the user linked to a processor customer.

        Falls back to matching by email so a customer created outside this
        service links to an existing local user.
        """
        now = datetime.now(timezone.utc)
        with self._lock:
            current = self._find_by_customer_id(external_customer_id)
            if current is None and fields.get("email"):
                current = self._find_by_email(fields["email"])
            if current is not None:
                updated = current.model_copy(
                    update={**fields, "external_customer_id": external_customer_id, "updated_at": now}
                )
            else:
                updated = UserRecord(
                    **{
                        **fields,
                        "id": uuid.uuid4().hex,
                        "external_customer_id": external_customer_id,
                        "created_at": now,
                        "updated_at": now,
                    }
                )
            self._users[updated.id] = updated
            return updated

    def update(self, user_id: str, fields: Dict[str, Any]) -> UserRecord:
        """Update fields on an existing user.

        Raises:
            NotFoundError: If id not found
            DuplicateUserError: If the new email belongs to another user
        """
        with self._lock:
            current = self.get_by_id(user_id)
            email = fields.get("email")
            if email and email != current.email:
                other = self._find_by_email(email)
                if other is not None and other.id != user_id:
                    raise DuplicateUserError(f"User already exists: {email}")
            updated = current.model_copy(update={**fields, "updated_at": datetime.now(timezone.utc)})
            self._users[user_id] = updated
            return updated

    def _find_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    def _find_by_customer_id(self, external_customer_id: str) -> Optional[UserRecord]:
        for user in self._users.values():
            if user.external_customer_id == external_customer_id:
                return user
        return None

    def get_by_id(self, user_id: str) -> UserRecord:
        """Get user by local id.

        Raises:
            NotFoundError: If id not found
        """
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError(f"User not found: {user_id}")
            return user

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            return self._find_by_email(email)

    def find_by_customer_id(self, external_customer_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self._find_by_customer_id(external_customer_id)

    def delete(self, user_id: str) -> bool:
        with self._lock:
            return self._users.pop(user_id, None) is not None

    def get_all(self) -> List[UserRecord]:
        with self._lock:
            return list(self._users.values())

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()

    def __len__(self) -> int:
        return self.count()


_store_instance: Optional[UserStore] = None
_store_lock = threading.Lock()


def get_user_store() -> UserStore:
    """Get global user store instance (singleton)."""
    global _store_instance
    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                _store_instance = UserStore()
    return _store_instance


def reset_user_store() -> None:
    get_user_store().clear()
