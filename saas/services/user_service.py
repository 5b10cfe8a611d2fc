"""
User Service

Tenant-local users and their group memberships: registration, login,
password changes and membership edits. Users are deactivated or suspended,
never hard-deleted.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from saas.auth import hash_password, verify_password
from saas.database import storage_errors
from saas.exceptions import (
    AuthenticationError,
    DuplicateResourceError,
    GroupNotFoundError,
    InvalidArgumentError,
    InvalidCredentialsError,
    ResourceNotFoundError,
    UserNotFoundError,
)
from saas.models.permission import Group
from saas.models.user import User, UserStatus, user_groups

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create_user(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> User:
        """
        Create an active user with a bcrypt-hashed password.

        Raises:
            InvalidArgumentError: username, email or password is empty
            DuplicateResourceError: username or email is taken
        """
        for field_name, value in (("username", username), ("email", email), ("password", password)):
            if not value or not value.strip():
                raise InvalidArgumentError(f"{field_name} is required", field=field_name)

        username = username.strip()
        email = email.strip().lower()
        with storage_errors("create_user"):
            result = await self.db.execute(select(User).where(or_(User.username == username, User.email == email)))
            existing = result.scalars().first()
        if existing is not None:
            if existing.username == username:
                raise DuplicateResourceError("User", "username", username)
            raise DuplicateResourceError("User", "email", email)

        user = User(
            username=username,
            email=email,
            password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            status=UserStatus.active.value,
        )
        try:
            with storage_errors("create_user", DuplicateResourceError("User", "username", username)):
                self.db.add(user)
                await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise
        await self.db.refresh(user)
        logger.info("User created: id=%s username=%s", user.id, user.username)
        return user

    async def get_user(self, user_id: int) -> User:
        with storage_errors("get_user"):
            user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_user_by_login(self, login: str) -> User:
        """Look a user up by username or email."""
        login = (login or "").strip()
        if not login:
            raise InvalidArgumentError("Username or email is required", field="login")
        with storage_errors("get_user_by_login"):
            result = await self.db.execute(
                select(User).where(or_(User.username == login, User.email == login.lower()))
            )
            user = result.scalars().first()
        if user is None:
            raise UserNotFoundError(login)
        return user

    async def authenticate(self, login: str, password: str) -> User:
        """
        Check *password* for the user identified by *login* and record the login.

        Raises:
            InvalidCredentialsError: unknown login or wrong password
            AuthenticationError: the account is inactive or suspended
        """
        try:
            user = await self.get_user_by_login(login)
        except (UserNotFoundError, InvalidArgumentError) as exc:
            raise InvalidCredentialsError() from exc

        if not verify_password(password, user.password):
            logger.warning("Failed login for user %s", user.id)
            raise InvalidCredentialsError()
        if user.status != UserStatus.active.value:
            logger.warning("Login refused for %s user %s", user.status, user.id)
            raise AuthenticationError(f"Account is {user.status}")

        user.last_login = datetime.now(timezone.utc)
        with storage_errors("authenticate"):
            await self.db.commit()
        await self.db.refresh(user)
        return user

    async def set_status(self, user_id: int, status: UserStatus | str) -> User:
        try:
            status = UserStatus(status)
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid user status: {status!r}", field="status") from exc

        user = await self.get_user(user_id)
        user.status = status.value
        with storage_errors("set_status"):
            await self.db.commit()
        await self.db.refresh(user)
        logger.info("User %s status set to %s", user.id, user.status)
        return user

    async def add_user_to_group(self, user_id: int, group_id: int) -> None:
        await self.get_user(user_id)
        with storage_errors("add_user_to_group"):
            group = await self.db.get(Group, group_id)
        if group is None:
            raise GroupNotFoundError(group_id)

        if group_id in await self.get_user_group_ids(user_id):
            return
        try:
            with storage_errors("add_user_to_group"):
                await self.db.execute(insert(user_groups).values(user_id=user_id, group_id=group_id))
                await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise
        logger.info("User %s added to group %s", user_id, group.name)

    async def remove_user_from_group(self, user_id: int, group_id: int) -> None:
        try:
            with storage_errors("remove_user_from_group"):
                result = await self.db.execute(
                    delete(user_groups).where(user_groups.c.user_id == user_id, user_groups.c.group_id == group_id)
                )
                if result.rowcount == 0:
                    raise ResourceNotFoundError("Group membership", f"{user_id}:{group_id}")
                await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise
        logger.info("User %s removed from group %s", user_id, group_id)

    async def get_user_group_ids(self, user_id: int) -> list[int]:
        with storage_errors("get_user_group_ids"):
            result = await self.db.execute(
                select(user_groups.c.group_id).where(user_groups.c.user_id == user_id).order_by(user_groups.c.group_id)
            )
            return list(result.scalars().all())

    async def change_password(self, user_id: int, current_password: str, new_password: str) -> User:
        """
        Replace the user's password after checking the current one.

        Raises:
            InvalidCredentialsError: *current_password* is wrong
            InvalidArgumentError: *new_password* is empty
        """
        if not new_password or not new_password.strip():
            raise InvalidArgumentError("new_password is required", field="new_password")

        user = await self.get_user(user_id)
        if not verify_password(current_password, user.password):
            logger.warning("Password change refused for user %s", user.id)
            raise InvalidCredentialsError("Current password is incorrect")

        user.password = hash_password(new_password)
        with storage_errors("change_password"):
            await self.db.commit()
        await self.db.refresh(user)
        logger.info("Password changed for user %s", user.id)
        return user

    async def set_user_groups(self, user_id: int, group_ids: list[int]) -> list[int]:
        """
        Replace every group membership of the user with *group_ids* in one
        transaction.

        Raises:
            GroupNotFoundError: one of *group_ids* does not exist; nothing changes
        """
        await self.get_user(user_id)
        wanted = list(dict.fromkeys(group_ids))
        if wanted:
            with storage_errors("set_user_groups"):
                result = await self.db.execute(select(Group.id).where(Group.id.in_(wanted)))
                found = set(result.scalars().all())
            for group_id in wanted:
                if group_id not in found:
                    raise GroupNotFoundError(group_id)

        try:
            with storage_errors("set_user_groups"):
                await self.db.execute(delete(user_groups).where(user_groups.c.user_id == user_id))
                if wanted:
                    await self.db.execute(
                        insert(user_groups), [{"user_id": user_id, "group_id": group_id} for group_id in wanted]
                    )
                await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise
        logger.info("User %s group memberships set to %s", user_id, sorted(wanted))
        return sorted(wanted)
