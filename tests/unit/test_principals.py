"""Unit tests for principal and scope values."""

import pytest

from permgate.exceptions import ValidationError
from permgate.principals import ANYONE, GLOBAL, Anyone, GroupId, ProjectScope, UserId, is_anyone, project_id_of
from permgate.roles import validate_role


class TestPrincipals:
    def test_user_equality_ignores_login(self):
        assert UserId("u1", login="marius") == UserId("u1")
        assert hash(UserId("u1", login="marius")) == hash(UserId("u1"))
        assert UserId("u1") != UserId("u2")

    def test_group_equality_ignores_organization(self):
        assert GroupId("g1", organization_id="org") == GroupId("g1")

    def test_anyone_is_a_distinct_value(self):
        assert Anyone() == ANYONE
        assert ANYONE != GroupId("Anyone")
        assert repr(ANYONE) == "ANYONE"

    @pytest.mark.parametrize("name", ["Anyone", "anyone", "ANYONE", "aNYONE"])
    def test_is_anyone(self, name):
        assert is_anyone(name)

    @pytest.mark.parametrize("name", [None, "", "any one", "anyones", "sonar-users"])
    def test_is_not_anyone(self, name):
        assert not is_anyone(name)


class TestScopes:
    def test_project_id_of(self):
        assert project_id_of(ProjectScope("p1")) == "p1"
        assert project_id_of(GLOBAL) is None

    def test_project_scopes_compare_by_project(self):
        assert ProjectScope("p1") == ProjectScope("p1")
        assert ProjectScope("p1") != GLOBAL


class TestRoles:
    def test_roles_are_opaque(self):
        assert validate_role("some-plugin-role") == "some-plugin-role"

    @pytest.mark.parametrize("role", ["", "  ", None])
    def test_empty_role_is_rejected(self, role):
        with pytest.raises(ValidationError, match="non-empty"):
            validate_role(role)
