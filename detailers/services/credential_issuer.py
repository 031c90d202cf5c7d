# -*- coding: utf-8 -*-
"""
Credential issuance for guest purchases.

Turns a paying customer's email into a login account. Only the bcrypt hash of
a password is stored; the plaintext is returned exactly once so it can be
emailed, and is never logged.
"""
import secrets
import string
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError

from detailers.errors import DuplicateError, NotFoundError
from detailers.infra.db import db
from detailers.infra.log import get_logger
from detailers.models.user import User, UserRole

logger = get_logger("detailers.credentials")

PASSWORD_ALPHABET = string.ascii_letters + string.digits
# 62 symbols ** 12 ~ 2**71
PASSWORD_LENGTH = 12


@dataclass
class IssuedCredentials:
    user_id: str
    email: str
    username: str
    role: str
    plaintext_password: Optional[str] = None
    created: bool = False

    @property
    def has_new_password(self) -> bool:
        return self.plaintext_password is not None


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def split_full_name(full_name: str) -> Tuple[str, str]:
    """First token is the first name, the remainder (possibly empty) the last name."""
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _credentials(user: User, plaintext: Optional[str] = None, created: bool = False) -> IssuedCredentials:
    return IssuedCredentials(
        user_id=user.user_id,
        email=user.email,
        username=user.username,
        role=user.role,
        plaintext_password=plaintext,
        created=created,
    )


class CredentialIssuer:
    """Find-or-create user accounts for paid purchases."""

    def _find(self, email: str) -> Optional[User]:
        return User.query.filter_by(email=email).first()

    def _issue_password(self, user: User) -> str:
        password = generate_password()
        user.set_password(password)
        # never downgrade: only GUEST becomes STUDENT
        if user.role == UserRole.GUEST.value:
            user.role = UserRole.STUDENT.value
        return password

    def _existing(self, user: User) -> IssuedCredentials:
        if user.has_password:
            logger.info("Reusing existing account for purchase", user_id=user.user_id, role=user.role)
            return _credentials(user)

        # GUEST rows carry no password; they need one to log in
        password = self._issue_password(user)
        db.session.commit()
        logger.info("Issued credentials to guest account", user_id=user.user_id)
        return _credentials(user, plaintext=password)

    def find_or_create_user_for_purchase(self, email: str, full_name: str) -> IssuedCredentials:
        """
        Return the account for ``email``, creating it if needed.

        ``plaintext_password`` is set only when a password was generated by
        this call (new account, or a GUEST account that had none).
        """
        email = email.strip().lower()
        user = self._find(email)
        if user is not None:
            return self._existing(user)

        first_name, last_name = split_full_name(full_name)
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=UserRole.STUDENT.value,
            is_active=True,
        )
        password = generate_password()
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # another request created the same email first
            db.session.rollback()
            user = self._find(email)
            if user is None:
                raise DuplicateError("Could not create user account", code="USER_CREATION_FAILED")
            logger.info("Account created concurrently; reusing it", user_id=user.user_id)
            return self._existing(user)

        logger.info("Created account for purchase", user_id=user.user_id)
        return _credentials(user, plaintext=password, created=True)

    def reissue_credentials(self, email: str) -> IssuedCredentials:
        """Replace the password of an existing account and return the new plaintext."""
        user = self._find(email.strip().lower())
        if user is None:
            raise NotFoundError("User account not found", code="USER_NOT_FOUND")

        password = self._issue_password(user)
        db.session.commit()
        logger.info("Reissued credentials", user_id=user.user_id)
        return _credentials(user, plaintext=password)

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self._find((email or "").strip().lower())
        if user is None or not user.is_active or not user.check_password(password or ""):
            return None
        return user
