"""Tests for UserService and the password helpers"""

from unittest.mock import AsyncMock, patch

import pytest
from utils.mocks import executed_sql, make_result

from saas.auth import hash_password, verify_password
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
from saas.models.user import User, UserStatus
from saas.services.user_service import UserService


@pytest.fixture
def service(mock_db):
    return UserService(mock_db)


def _user(status="active", password="correct horse"):
    return User(id=1, username="alice", email="alice@example.com", password=hash_password(password), status=status)


class TestPasswordHashing:
    def test_hash_is_not_plaintext(self):
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert hashed.startswith("$2")

    def test_verify(self):
        hashed = hash_password("s3cret")
        assert verify_password("s3cret", hashed)
        assert not verify_password("wrong", hashed)


class TestCreateUser:
    async def test_create(self, service, mock_db):
        mock_db.execute.return_value = make_result(scalars=[])
        user = await service.create_user("alice", "Alice@Example.com", "s3cret")
        assert user.email == "alice@example.com"
        assert user.status == UserStatus.active.value
        assert verify_password("s3cret", user.password)
        mock_db.commit.assert_awaited_once()

    async def test_duplicate_username(self, service, mock_db):
        mock_db.execute.return_value = make_result(scalars=[_user()])
        with pytest.raises(DuplicateResourceError) as exc_info:
            await service.create_user("alice", "other@example.com", "s3cret")
        assert exc_info.value.details["field"] == "username"
        mock_db.add.assert_not_called()

    async def test_duplicate_email(self, service, mock_db):
        mock_db.execute.return_value = make_result(scalars=[_user()])
        with pytest.raises(DuplicateResourceError) as exc_info:
            await service.create_user("bob", "alice@example.com", "s3cret")
        assert exc_info.value.details["field"] == "email"

    @pytest.mark.parametrize("username, email, password", [("", "a@b.c", "x"), ("a", " ", "x"), ("a", "a@b.c", "")])
    async def test_required_fields(self, service, username, email, password):
        with pytest.raises(InvalidArgumentError):
            await service.create_user(username, email, password)


class TestAuthenticate:
    async def test_success_records_login(self, service):
        user = _user()
        with patch.object(service, "get_user_by_login", AsyncMock(return_value=user)):
            assert await service.authenticate("alice", "correct horse") is user
        assert user.last_login is not None

    async def test_wrong_password(self, service):
        with patch.object(service, "get_user_by_login", AsyncMock(return_value=_user())):
            with pytest.raises(InvalidCredentialsError):
                await service.authenticate("alice", "wrong")

    async def test_unknown_login(self, service):
        with patch.object(service, "get_user_by_login", AsyncMock(side_effect=UserNotFoundError("bob"))):
            with pytest.raises(InvalidCredentialsError):
                await service.authenticate("bob", "whatever")

    @pytest.mark.parametrize("status", ["inactive", "suspended"])
    async def test_inactive_accounts_refused(self, service, mock_db, status):
        with patch.object(service, "get_user_by_login", AsyncMock(return_value=_user(status=status))):
            with pytest.raises(AuthenticationError, match=status):
                await service.authenticate("alice", "correct horse")
        mock_db.commit.assert_not_awaited()


class TestStatusAndMembership:
    async def test_set_status(self, service, mock_db):
        user = _user()
        mock_db.get.return_value = user
        await service.set_status(1, "suspended")
        assert user.status == "suspended"

    async def test_set_invalid_status(self, service):
        with pytest.raises(InvalidArgumentError):
            await service.set_status(1, "deleted")

    async def test_get_missing_user(self, service, mock_db):
        mock_db.get.return_value = None
        with pytest.raises(UserNotFoundError):
            await service.get_user(1)

    async def test_add_to_group(self, service, mock_db):
        mock_db.get.side_effect = [_user(), Group(id=2, name="editors")]
        mock_db.execute.side_effect = [make_result(scalars=[]), make_result()]
        await service.add_user_to_group(1, 2)
        assert executed_sql(mock_db)[1].startswith("INSERT INTO user_groups")
        mock_db.commit.assert_awaited_once()

    async def test_add_to_group_is_idempotent(self, service, mock_db):
        mock_db.get.side_effect = [_user(), Group(id=2, name="editors")]
        mock_db.execute.return_value = make_result(scalars=[2])
        await service.add_user_to_group(1, 2)
        mock_db.commit.assert_not_awaited()

    async def test_add_to_missing_group(self, service, mock_db):
        mock_db.get.side_effect = [_user(), None]
        with pytest.raises(GroupNotFoundError):
            await service.add_user_to_group(1, 2)

    async def test_remove_missing_membership(self, service, mock_db):
        mock_db.execute.return_value = make_result(rowcount=0)
        with pytest.raises(ResourceNotFoundError):
            await service.remove_user_from_group(1, 2)
        mock_db.rollback.assert_awaited_once()

    async def test_group_ids(self, service, mock_db):
        mock_db.execute.return_value = make_result(scalars=[2, 5])
        assert await service.get_user_group_ids(1) == [2, 5]

    async def test_set_groups_replaces_memberships(self, service, mock_db):
        mock_db.get.return_value = _user()
        mock_db.execute.side_effect = [make_result(scalars=[2, 5]), make_result(), make_result()]
        assert await service.set_user_groups(1, [5, 2, 5]) == [2, 5]
        sql = executed_sql(mock_db)
        assert sql[1].startswith("DELETE FROM user_groups")
        assert sql[2].startswith("INSERT INTO user_groups")
        assert mock_db.execute.await_args_list[2].args[1] == [
            {"user_id": 1, "group_id": 5},
            {"user_id": 1, "group_id": 2},
        ]
        mock_db.commit.assert_awaited_once()

    async def test_set_groups_empty_clears(self, service, mock_db):
        mock_db.get.return_value = _user()
        assert await service.set_user_groups(1, []) == []
        sql = executed_sql(mock_db)
        assert len(sql) == 1
        assert sql[0].startswith("DELETE FROM user_groups")

    async def test_set_groups_unknown_group_changes_nothing(self, service, mock_db):
        mock_db.get.return_value = _user()
        mock_db.execute.return_value = make_result(scalars=[2])
        with pytest.raises(GroupNotFoundError):
            await service.set_user_groups(1, [2, 9])
        assert len(executed_sql(mock_db)) == 1
        mock_db.commit.assert_not_awaited()

    async def test_set_groups_missing_user(self, service, mock_db):
        mock_db.get.return_value = None
        with pytest.raises(UserNotFoundError):
            await service.set_user_groups(1, [2])
        mock_db.execute.assert_not_awaited()


class TestChangePassword:
    async def test_change(self, service, mock_db):
        user = _user()
        mock_db.get.return_value = user
        await service.change_password(1, "correct horse", "battery staple")
        assert verify_password("battery staple", user.password)
        mock_db.commit.assert_awaited_once()

    async def test_wrong_current_password(self, service, mock_db):
        user = _user()
        mock_db.get.return_value = user
        with pytest.raises(InvalidCredentialsError):
            await service.change_password(1, "wrong", "battery staple")
        assert verify_password("correct horse", user.password)
        mock_db.commit.assert_not_awaited()

    async def test_empty_new_password(self, service, mock_db):
        with pytest.raises(InvalidArgumentError):
            await service.change_password(1, "correct horse", " ")
        mock_db.get.assert_not_awaited()
