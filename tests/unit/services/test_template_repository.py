"""Unit tests for TemplateRepository."""

import pytest

from permgate.database.models import (
    PermissionTemplate,
    PermissionTemplateCharacteristic,
    PermissionTemplateGroup,
    PermissionTemplateUser,
)
from permgate.exceptions import NotFoundError, ValidationError
from permgate.principals import ANYONE, GroupId, UserId
from permgate.roles import ADMIN, CODEVIEWER, ISSUE_ADMIN, USER
from permgate.services.template_repository import TemplateRepository, TemplateSnapshot


@pytest.fixture
def repository(db):
    return TemplateRepository(db)


class TestTemplateAdministration:
    """Creating templates and editing their entries."""

    def test_create_template(self, db, organization, repository):
        template = repository.create_template(organization.id, "Java projects", "For Java code")

        assert template.id is not None
        assert template.organization_id == organization.id
        assert template.description == "For Java code"
        assert repository.get_template_by_name(organization.id, "Java projects").id == template.id

    def test_create_template_with_duplicate_name(self, organization, repository):
        repository.create_template(organization.id, "Java projects")

        with pytest.raises(ValidationError, match="already exists"):
            repository.create_template(organization.id, "Java projects")

    def test_same_name_in_another_organization(self, organization, repository):
        repository.create_template(organization.id, "shared name")

        template = repository.create_template(None, "shared name")

        assert template.organization_id is None

    @pytest.mark.parametrize("name", ["", "   "])
    def test_create_template_with_empty_name(self, organization, repository, name):
        with pytest.raises(ValidationError):
            repository.create_template(organization.id, name)

    def test_add_user_to_template_is_idempotent(self, db, organization, repository, make_user):
        user = make_user()
        template = repository.create_template(organization.id, "t")

        assert repository.add_user_to_template(template.id, user.id, ADMIN) is True
        assert repository.add_user_to_template(template.id, user.id, ADMIN) is False
        assert repository.add_user_to_template(template.id, user.id, USER) is True

        assert db.query(PermissionTemplateUser).count() == 2

    def test_add_unknown_user_to_template(self, organization, repository):
        template = repository.create_template(organization.id, "t")

        with pytest.raises(NotFoundError, match="User"):
            repository.add_user_to_template(template.id, "ghost", ADMIN)

    def test_add_user_to_unknown_template(self, repository, make_user):
        with pytest.raises(NotFoundError, match="Permission template"):
            repository.add_user_to_template("missing", make_user().id, ADMIN)

    def test_add_entry_with_empty_role(self, organization, repository, make_user):
        template = repository.create_template(organization.id, "t")

        with pytest.raises(ValidationError):
            repository.add_user_to_template(template.id, make_user().id, "")

    def test_add_group_and_anyone_to_template_is_idempotent(self, db, organization, repository, make_group):
        group = make_group()
        template = repository.create_template(organization.id, "t")

        assert repository.add_group_to_template(template.id, GroupId(group.id), CODEVIEWER) is True
        assert repository.add_group_to_template(template.id, GroupId(group.id), CODEVIEWER) is False
        assert repository.add_group_to_template(template.id, ANYONE, CODEVIEWER) is True
        assert repository.add_group_to_template(template.id, ANYONE, CODEVIEWER) is False

        rows = db.query(PermissionTemplateGroup).all()
        assert sorted(row.group_id is None for row in rows) == [False, True]

    def test_remove_user_from_template(self, organization, repository, make_user):
        user = make_user()
        template = repository.create_template(organization.id, "t")
        repository.add_user_to_template(template.id, user.id, ADMIN)

        assert repository.remove_user_from_template(template.id, user.id, ADMIN) is True
        assert repository.remove_user_from_template(template.id, user.id, ADMIN) is False
        assert repository.resolve_template(template.id).user_entries == frozenset()

    def test_remove_anyone_keeps_group_entry(self, organization, repository, make_group):
        group = make_group()
        template = repository.create_template(organization.id, "t")
        repository.add_group_to_template(template.id, GroupId(group.id), USER)
        repository.add_group_to_template(template.id, ANYONE, USER)

        assert repository.remove_group_from_template(template.id, ANYONE, USER) is True

        snapshot = repository.resolve_template(template.id)
        assert snapshot.group_entries == frozenset({(GroupId(group.id), USER)})

    def test_set_creator_characteristic_updates_in_place(self, db, organization, repository):
        template = repository.create_template(organization.id, "t")

        repository.set_creator_characteristic(template.id, ADMIN, True)
        characteristic = repository.set_creator_characteristic(template.id, ADMIN, False)

        assert characteristic.with_project_creator is False
        assert db.query(PermissionTemplateCharacteristic).count() == 1

    def test_deleting_template_removes_entries(self, db, organization, repository, make_user):
        template = repository.create_template(organization.id, "t")
        repository.add_user_to_template(template.id, make_user().id, ADMIN)
        repository.add_group_to_template(template.id, ANYONE, USER)
        repository.set_creator_characteristic(template.id, ADMIN, True)

        db.delete(db.query(PermissionTemplate).filter(PermissionTemplate.id == template.id).one())
        db.commit()

        assert db.query(PermissionTemplateUser).count() == 0
        assert db.query(PermissionTemplateGroup).count() == 0
        assert db.query(PermissionTemplateCharacteristic).count() == 0


class TestTemplateLookup:
    """Finding templates and reading snapshots."""

    def test_find_template_by_id_or_name(self, organization, repository):
        template = repository.create_template(organization.id, "t")

        assert repository.find_template(template_id=template.id).id == template.id
        assert repository.find_template(organization_id=organization.id, name="t").id == template.id

    def test_find_template_needs_exactly_one_reference(self, organization, repository):
        template = repository.create_template(organization.id, "t")

        with pytest.raises(ValidationError):
            repository.find_template()
        with pytest.raises(ValidationError):
            repository.find_template(template_id=template.id, name="t")

    def test_find_unknown_template_by_name(self, organization, repository):
        with pytest.raises(NotFoundError, match="name 'nope'"):
            repository.find_template(organization_id=organization.id, name="nope")

    def test_resolve_unknown_template(self, repository):
        with pytest.raises(NotFoundError, match="id 'missing' is not found"):
            repository.resolve_template("missing")

    def test_snapshot_contents(self, organization, repository, make_user, make_group):
        user = make_user("marius")
        group = make_group()
        template = repository.create_template(organization.id, "full")
        repository.add_user_to_template(template.id, user.id, ADMIN)
        repository.add_group_to_template(template.id, GroupId(group.id), ISSUE_ADMIN)
        repository.add_group_to_template(template.id, ANYONE, USER)
        repository.set_creator_characteristic(template.id, ADMIN, True)
        repository.set_creator_characteristic(template.id, USER, False)

        snapshot = repository.resolve_template(template.id)

        assert snapshot.id == template.id
        assert snapshot.name == "full"
        assert snapshot.user_entries == frozenset({(UserId(user.id), ADMIN)})
        assert snapshot.group_entries == frozenset({(GroupId(group.id), ISSUE_ADMIN), (ANYONE, USER)})
        assert dict(snapshot.characteristics) == {ADMIN: True, USER: False}
        assert snapshot.creator_roles == frozenset({ADMIN})
        assert snapshot.has_user_entry(user.id, ADMIN)
        assert snapshot.has_anyone_entry(USER)
        assert not snapshot.has_anyone_entry(ISSUE_ADMIN)
        assert snapshot.group_ids_for(ISSUE_ADMIN) == frozenset({group.id})
        assert snapshot.group_ids_for(USER) == frozenset()

    def test_snapshot_carries_user_login(self, organization, repository, make_user):
        user = make_user("janette")
        template = repository.create_template(organization.id, "t")
        repository.add_user_to_template(template.id, user.id, USER)

        (principal, _), = repository.resolve_template(template.id).user_entries

        assert principal.login == "janette"

    def test_snapshot_is_not_affected_by_later_edits(self, organization, repository):
        template = repository.create_template(organization.id, "t")
        snapshot = repository.resolve_template(template.id)

        repository.add_group_to_template(template.id, ANYONE, USER)

        assert snapshot.group_entries == frozenset()
        with pytest.raises(TypeError):
            snapshot.characteristics[ADMIN] = True

    def test_resolve_default(self, organization, repository):
        template = repository.create_template(organization.id, "default")

        snapshot = repository.resolve_default(template.id)

        assert isinstance(snapshot, TemplateSnapshot)
        assert snapshot.id == template.id

    @pytest.mark.parametrize("selector", [None, "", "UNKNOWN_TEMPLATE_UUID"])
    def test_resolve_default_without_template(self, repository, selector):
        assert repository.resolve_default(selector) is None
