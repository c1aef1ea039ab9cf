"""User directory - local users linked to processor customers."""

import threading
from typing import Optional

from subscription_manager.exceptions import DuplicateUserError
from subscription_manager.logging_config import get_logger
from subscription_manager.models.catalog import UserRecord
from subscription_manager.models.processor import RemoteCustomer
from subscription_manager.repositories.user_store import UserStore, get_user_store
from subscription_manager.services.payment_processor import PaymentProcessor, get_payment_processor

logger = get_logger(__name__)


class UserDirectory:
    """User CRUD plus mirroring of processor customer events."""

    def __init__(
        self,
        processor: Optional[PaymentProcessor] = None,
        store: Optional[UserStore] = None,
    ):
        self._processor = processor
        self._store = store or get_user_store()

    @property
    def processor(self) -> PaymentProcessor:
        if self._processor is None:
            self._processor = get_payment_processor()
        return self._processor

    def create_user(self, email: str, name: Optional[str] = None) -> UserRecord:
        """Create a processor customer and the local user linked to it.

        Raises:
            DuplicateUserError: Email already registered (checked before the processor call)
            ProcessorError: Customer creation failed
        """
        if self._store.find_by_email(email) is not None:
            raise DuplicateUserError(f"User already exists: {email}")

        customer = self.processor.create_customer(email, name)
        user = self._store.add(email, name, external_customer_id=customer.id)
        logger.info("user_created", user_id=user.id, customer_id=customer.id)
        return user

    def apply_customer(self, customer: RemoteCustomer) -> Optional[UserRecord]:
        """Mirror a processor customer event onto the linked user."""
        if customer.deleted:
            user = self._store.find_by_customer_id(customer.id)
            if user is None:
                return None
            logger.info("customer_unlinked", user_id=user.id, customer_id=customer.id)
            return self._store.update(user.id, {"external_customer_id": None})

        if not customer.email:
            logger.warning("customer_without_email", customer_id=customer.id)
            return self._store.find_by_customer_id(customer.id)

        fields = {"email": customer.email}
        if customer.name is not None:
            fields["name"] = customer.name
        user = self._store.upsert_by_customer_id(customer.id, fields)
        logger.info("customer_mirrored", user_id=user.id, customer_id=customer.id)
        return user

    def get_user(self, user_id: str) -> UserRecord:
        return self._store.get_by_id(user_id)

    def list_users(self) -> list[UserRecord]:
        return self._store.get_all()

    def update_user(self, user_id: str, email: Optional[str] = None, name: Optional[str] = None) -> UserRecord:
        fields = {}
        if email is not None:
            fields["email"] = email
        if name is not None:
            fields["name"] = name
        user = self._store.update(user_id, fields)
        logger.info("user_updated", user_id=user_id, fields=sorted(fields))
        return user

    def delete_user(self, user_id: str) -> None:
        """Delete a local user (the processor customer is kept).

        Raises:
            NotFoundError: If id not found
        """
        user = self._store.get_by_id(user_id)
        self._store.delete(user.id)
        logger.info("user_deleted", user_id=user_id)


_directory_instance: Optional[UserDirectory] = None
_directory_lock = threading.Lock()


def get_user_directory() -> UserDirectory:
    """Get global user directory instance (singleton)."""
    global _directory_instance
    if _directory_instance is None:
        with _directory_lock:
            if _directory_instance is None:
                _directory_instance = UserDirectory()
    return _directory_instance


def reset_user_directory() -> None:
    global _directory_instance
    with _directory_lock:
        _directory_instance = None
