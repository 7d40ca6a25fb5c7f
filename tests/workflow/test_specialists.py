"""Tests for SpecialistRegistry: role matching, reuse and creation."""

import re

from orchestra.workflow.specialists import (
    EXECUTOR_CODE,
    EXECUTOR_TEST,
    ORCHESTRATOR_ID,
    SPECIALIST_TEMPLATES,
    SpecialistRegistry,
    new_orchestrator,
)


class TestRoles:
    def test_registered_roles(self):
        assert set(SpecialistRegistry().roles) == {"Executor-Code", "Executor-Test", "Executor-Design"}

    def test_resolve_role_case_insensitive(self):
        registry = SpecialistRegistry()
        assert registry.resolve_role(" executor-code ") == EXECUTOR_CODE
        assert registry.resolve_role("Project-Manager") is None

    def test_unknown_role_is_rejected(self):
        roster = []
        assert SpecialistRegistry().assign(roster, "Wizard", "cast spells") is None
        assert roster == []


class TestAssign:
    def test_creates_from_template(self):
        roster = []
        specialist = SpecialistRegistry().assign(roster, "executor-code", "Write app.py")

        assert roster == [specialist]
        assert specialist.role == EXECUTOR_CODE
        assert specialist.task_description == "Write app.py"
        assert specialist.capabilities == list(SPECIALIST_TEMPLATES[EXECUTOR_CODE].capabilities)
        assert re.fullmatch(r"Specialist-Executor-Code-[0-9a-f]{8}", specialist.id)

    def test_reuses_idle_specialist(self):
        registry = SpecialistRegistry()
        roster = []
        first = registry.assign(roster, EXECUTOR_CODE, "Task 1")
        registry.complete(first)

        second = registry.assign(roster, EXECUTOR_CODE, "Task 2")

        assert second is first
        assert len(roster) == 1
        assert first.task_description == "Task 2"

    def test_busy_specialist_gets_a_sibling(self):
        registry = SpecialistRegistry()
        roster = []
        first = registry.assign(roster, EXECUTOR_CODE, "Task 1")
        second = registry.assign(roster, EXECUTOR_CODE, "Task 2")

        assert second is not first
        assert len(roster) == 2
        assert first.id != second.id

    def test_roles_do_not_share(self):
        registry = SpecialistRegistry()
        roster = []
        coder = registry.assign(roster, EXECUTOR_CODE, "Task 1")
        registry.complete(coder)
        tester = registry.assign(roster, EXECUTOR_TEST, "Task 2")
        assert tester is not coder
        assert len(roster) == 2

    def test_colliding_ids_are_regenerated(self):
        ids = iter(["dup", "dup", "fresh"])
        registry = SpecialistRegistry(id_factory=lambda role: next(ids))
        roster = []
        a = registry.assign(roster, EXECUTOR_CODE, "Task 1")
        b = registry.assign(roster, EXECUTOR_CODE, "Task 2")
        assert (a.id, b.id) == ("dup", "fresh")


class TestComplete:
    def test_complete_returns_task(self):
        registry = SpecialistRegistry()
        roster = []
        specialist = registry.assign(roster, EXECUTOR_CODE, "Write app.py")
        assert registry.complete(specialist) == "Write app.py"
        assert specialist.idle

    def test_is_registered(self):
        registry = SpecialistRegistry()
        roster = []
        specialist = registry.assign(roster, EXECUTOR_CODE, "x")
        assert registry.is_registered(specialist)
        specialist.role = "Retired-Role"
        assert not registry.is_registered(specialist)


def test_new_orchestrator():
    orchestrator = new_orchestrator()
    assert orchestrator.id == ORCHESTRATOR_ID
    assert orchestrator.is_valid
    assert orchestrator.capabilities
    assert orchestrator.current_focus is None
