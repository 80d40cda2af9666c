"""Tests for the projects service."""

import uuid

import pytest
from dependency_injector import providers

from app.container import container
from app.errors import ConflictError
from app.models.audit import SystemLog
from app.models.projects import Project
from app.schemas.projects import ProjectCreate, ProjectUpdate
from app.services import projects as projects_module
from app.services.projects import projects
from app.services.role_policy import PolicyToggles


class TestCreateProject:
    def test_pmo_creates_then_duplicate_name_is_rejected(self, db_session, identity_for, department, pmo_account):
        identity = identity_for(pmo_account)

        first = projects.create(db_session, identity, ProjectCreate(name="Website Overhaul", department_id=department.id))
        assert first.status == 201
        assert first.data.status == "active"
        assert first.data.created_by_account_id == pmo_account.id

        second = projects.create(
            db_session, identity, ProjectCreate(name="  website overhaul ", department_id=department.id)
        )
        assert second.status == 400
        assert second.message == "Tên dự án 'website overhaul' đã tồn tại. Vui lòng chọn tên khác."

    def test_duplicate_name_is_a_conflict(self, db_session, project):
        with pytest.raises(ConflictError) as excinfo:
            projects_module._ensure_unique_name(db_session, "WEBSITE RELAUNCH")

        assert (excinfo.value.code, excinfo.value.status_code) == ("duplicate_name", 400)
        projects_module._ensure_unique_name(db_session, "Website relaunch", exclude_id=project.id)

    def test_name_of_deleted_project_can_be_reused(self, db_session, identity_for, project, pmo_account):
        identity = identity_for(pmo_account)
        assert projects.delete(db_session, identity, str(project.id)).status == 200

        result = projects.create(
            db_session, identity, ProjectCreate(name="Website relaunch", department_id=project.department_id)
        )
        assert result.status == 201

    def test_non_pmo_is_denied(self, db_session, identity_for, department, leader_account):
        result = projects.create(
            db_session, identity_for(leader_account), ProjectCreate(name="Side project", department_id=department.id)
        )
        assert result.status == 403
        assert "Only PMO allowed" in result.message
        assert db_session.query(Project).count() == 0

    def test_missing_fields(self, db_session, identity_for, pmo_account):
        result = projects.create(db_session, identity_for(pmo_account), ProjectCreate(name="No department"))
        assert result.status == 400
        assert result.message == "Missing required fields: name, departmentId"

    def test_unknown_department(self, db_session, identity_for, pmo_account):
        result = projects.create(
            db_session, identity_for(pmo_account), ProjectCreate(name="Ghost", department_id=uuid.uuid4())
        )
        assert result.status == 404

    def test_create_is_audited(self, db_session, identity_for, department, pmo_account):
        projects.create(db_session, identity_for(pmo_account), ProjectCreate(name="Intranet", department_id=department.id))

        log = db_session.query(SystemLog).filter(SystemLog.action == "create_project").one()
        assert log.actor_account_id == pmo_account.id
        assert log.target_type == "project"
        assert log.message == 'Tạo dự án "Intranet"'


class TestViewProjects:
    def test_leader_sees_own_department_only(
        self, db_session, identity_for, project, other_department, pmo_account, leader_account
    ):
        foreign = Project(name="Campaign", department_id=other_department.id, created_by_account_id=pmo_account.id)
        db_session.add(foreign)
        db_session.commit()

        listed = projects.list(db_session, identity_for(leader_account))
        assert [item.name for item in listed.data] == ["Website relaunch"]
        assert projects.get(db_session, identity_for(leader_account), str(foreign.id)).status == 403

    def test_pmo_and_director_see_everything(self, db_session, identity_for, project, other_department, pmo_account, director_account):
        db_session.add(Project(name="Campaign", department_id=other_department.id))
        db_session.commit()

        assert projects.list(db_session, identity_for(pmo_account)).meta["pagination"]["total"] == 2
        assert projects.list(db_session, identity_for(director_account)).meta["pagination"]["total"] == 2

    def test_admin_visibility_follows_toggle(self, db_session, identity_for, project, admin_account):
        assert len(projects.list(db_session, identity_for(admin_account)).data) == 1

        with container.policy_toggles.override(providers.Object(PolicyToggles(admin_can_view_projects=False))):
            listed = projects.list(db_session, identity_for(admin_account))
            detail = projects.get(db_session, identity_for(admin_account), str(project.id))

        assert listed.status == 403
        assert detail.status == 403

    def test_filters_and_search(self, db_session, identity_for, project, pmo_account):
        db_session.add(Project(name="Mobile app", department_id=project.department_id, status="closed"))
        db_session.commit()
        identity = identity_for(pmo_account)

        assert [p.name for p in projects.list(db_session, identity, status="closed").data] == ["Mobile app"]
        assert [p.name for p in projects.list(db_session, identity, search="relaunch").data] == ["Website relaunch"]
        assert projects.list(db_session, identity, order_by="bogus").status == 400

    def test_deleted_projects_are_hidden(self, db_session, identity_for, project, pmo_account):
        projects.delete(db_session, identity_for(pmo_account), str(project.id))

        assert projects.list(db_session, identity_for(pmo_account)).data == []
        assert projects.get(db_session, identity_for(pmo_account), str(project.id)).status == 404


class TestUpdateProject:
    def test_director_approves(self, db_session, identity_for, project, director_account):
        result = projects.update(
            db_session, identity_for(director_account), str(project.id), ProjectUpdate(status="approved")
        )
        assert result.status == 200
        assert result.data.status == "approved"
        assert db_session.query(SystemLog).filter(SystemLog.action == "project_status_change").count() == 1
        assert db_session.query(SystemLog).filter(SystemLog.action == "update_project").count() == 0

    def test_director_cannot_rename(self, db_session, identity_for, project, director_account):
        result = projects.update(
            db_session, identity_for(director_account), str(project.id), ProjectUpdate(name="Renamed")
        )
        assert result.status == 403
        db_session.refresh(project)
        assert project.name == "Website relaunch"

    def test_leader_cannot_update(self, db_session, identity_for, project, leader_account):
        result = projects.update(
            db_session, identity_for(leader_account), str(project.id), ProjectUpdate(description="x")
        )
        assert result.status == 403

    def test_pmo_rename_checks_uniqueness(self, db_session, identity_for, project, pmo_account):
        db_session.add(Project(name="Mobile app", department_id=project.department_id))
        db_session.commit()
        identity = identity_for(pmo_account)

        clash = projects.update(db_session, identity, str(project.id), ProjectUpdate(name="Mobile App"))
        assert clash.status == 400

        same = projects.update(db_session, identity, str(project.id), ProjectUpdate(name="Website relaunch"))
        assert same.status == 200

    def test_status_deleted_must_use_delete(self, db_session, identity_for, project, pmo_account):
        result = projects.update(db_session, identity_for(pmo_account), str(project.id), ProjectUpdate(status="deleted"))
        assert result.status == 400
        assert result.message == "Dùng chức năng xóa để xóa dự án"


class TestDeleteProject:
    def test_pmo_soft_deletes(self, db_session, identity_for, project, pmo_account):
        result = projects.delete(db_session, identity_for(pmo_account), str(project.id))

        assert result.status == 200
        db_session.refresh(project)
        assert project.is_deleted
        assert project.status == "deleted"
        assert project.deleted_by_account_id == pmo_account.id

    def test_director_cannot_delete(self, db_session, identity_for, project, director_account):
        assert projects.delete(db_session, identity_for(director_account), str(project.id)).status == 403

    def test_missing_project(self, db_session, identity_for, pmo_account):
        assert projects.delete(db_session, identity_for(pmo_account), str(uuid.uuid4())).status == 404
