import pytest

from smolcode.planner import (
    Plan,
    PlanInfo,
    PlanNotFoundError,
    Planner,
    PlannerError,
    Step,
)


@pytest.fixture
def planner(tmp_path):
    with Planner(tmp_path / "test_planner.db") as instance:
        yield instance


def test_new_planner_creates_directory_and_empty_database(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "plans.db"
    with Planner(db_path) as instance:
        assert instance.list() == []
    assert db_path.exists()


def test_create_returns_new_unsaved_plan(planner):
    plan = planner.create("test-plan-create")
    assert plan.id == "test-plan-create"
    assert plan.steps == []
    assert plan.is_new is True
    assert planner.list() == []
    with pytest.raises(PlanNotFoundError):
        planner.get("test-plan-create")
    second = planner.create("test-plan-create")
    assert second.id == "test-plan-create"


def test_create_rejects_empty_name(planner):
    with pytest.raises(PlannerError):
        planner.create("")


def test_get_basic(planner):
    planner.save(planner.create("test-plan-get"))
    plan = planner.get("test-plan-get")
    assert plan.id == "test-plan-get"
    assert plan.steps == []
    with pytest.raises(PlanNotFoundError, match="not found"):
        planner.get("non-existent-plan")


def test_save_and_get(planner):
    plan = planner.create("test-plan-save-get")
    assert plan.is_new
    plan.add_step("step1", "First step description", ["AC1.1", "AC1.2"])
    plan.add_step("step2", "Second step", ["AC2.1"])
    planner.save(plan)
    assert plan.is_new is False

    retrieved = planner.get("test-plan-save-get")
    assert retrieved.id == "test-plan-save-get"
    assert len(retrieved.steps) == 2
    step1, step2 = retrieved.steps
    assert step1.id == "step1"
    assert step1.description == "First step description"
    assert step1.status == "TODO"
    assert step1.acceptance_criteria == ["AC1.1", "AC1.2"]
    assert step2.id == "step2"
    assert step2.description == "Second step"
    assert step2.status == "TODO"
    assert step2.acceptance_criteria == ["AC2.1"]

    retrieved.remove_steps(["step1"])
    retrieved.mark_as_completed("step2")
    retrieved.add_step("step3", "Third step", None)
    retrieved.reorder(["step3", "step2"])
    planner.save(retrieved)

    final = planner.get("test-plan-save-get")
    assert [step.id for step in final.steps] == ["step3", "step2"]
    assert final.steps[0].status == "TODO"
    assert final.steps[1].status == "DONE"
    assert final.steps[0].acceptance_criteria == []
    assert final.is_new is False


def test_mark_status():
    plan = Plan(id="test-status-plan")
    plan.add_step("step1", "Step 1 desc", None)
    plan.add_step("step2", "Step 2 desc", None)
    assert plan.steps[0].status == "TODO"

    plan.mark_as_completed("step1")
    assert plan.steps[0].status == "DONE"
    assert plan.steps[1].status == "TODO"

    plan.mark_as_incomplete("step1")
    assert plan.steps[0].status == "TODO"

    with pytest.raises(PlannerError, match="non-existent-step"):
        plan.mark_as_completed("non-existent-step")
    with pytest.raises(PlannerError, match="non-existent-step"):
        plan.mark_as_incomplete("non-existent-step")


def test_save_new_and_existing(planner):
    name = "test-plan-new-existing"
    plan1 = planner.create(name)
    plan1.add_step("s1", "Step 1", None)
    planner.save(plan1)
    assert plan1.is_new is False
    assert [info.name for info in planner.list()] == [name]

    plan1.add_step("s2", "Step 2", None)
    planner.save(plan1)
    assert plan1.is_new is False

    retrieved = planner.get(name)
    assert len(retrieved.steps) == 2
    assert retrieved.is_new is False

    retrieved.add_step("s3", "Step 3", None)
    planner.save(retrieved)
    assert len(planner.get(name).steps) == 3

    plan2 = planner.create(name)
    plan2.add_step("s4", "Step 4", None)
    with pytest.raises(PlannerError, match="already exists"):
        planner.save(plan2)
    assert plan2.is_new is True
    assert [step.id for step in planner.get(name).steps] == ["s1", "s2", "s3"]

    missing = Plan(id="non-existent-plan", is_new=False)
    missing.add_step("s1", "some step", None)
    with pytest.raises(PlanNotFoundError):
        planner.save(missing)


def test_inspect_renders_markdown():
    plan = Plan(id="p")
    plan.add_step("s1", "Do it", ["a", "b"])
    plan.add_step("s2", "", None)
    plan.mark_as_completed("s2")
    assert plan.inspect() == (
        "## 1. [TODO] s1\n\nDo it\n\nAcceptance Criteria:\n1. a\n2. b\n\n"
        "## 2. [DONE] s2\n\n"
    )


def test_inspect_empty_plan():
    assert Plan(id="empty").inspect() == ""


def test_next_step_and_is_completed():
    plan = Plan(id="p")
    assert plan.next_step() is None
    assert plan.is_completed()
    plan.add_step("a", "A", None)
    plan.add_step("b", "B", None)
    assert plan.next_step().id == "a"
    plan.mark_as_completed("a")
    assert plan.next_step().id == "b"
    assert not plan.is_completed()
    plan.mark_as_completed("b")
    assert plan.next_step() is None
    assert plan.is_completed()


def test_step_status_is_uppercased():
    assert Step("x", "desc", "done").status == "DONE"


def test_remove_steps_counts_only_existing():
    plan = Plan(id="p")
    for step_id in ("a", "b", "c"):
        plan.add_step(step_id, step_id.upper(), None)
    assert plan.remove_steps([]) == 0
    assert plan.remove_steps(["b", "missing"]) == 1
    assert [step.id for step in plan.steps] == ["a", "c"]


def test_reorder_ignores_unknown_and_duplicates():
    plan = Plan(id="p")
    for step_id in ("a", "b", "c", "d"):
        plan.add_step(step_id, step_id, None)
    plan.reorder(["c", "x", "a", "c"])
    assert [step.id for step in plan.steps] == ["c", "a", "b", "d"]


def test_list_summaries(planner):
    first = planner.create("alpha")
    first.add_step("s1", "one", None)
    first.add_step("s2", "two", None)
    first.mark_as_completed("s1")
    planner.save(first)

    done = planner.create("beta")
    done.add_step("s1", "one", None)
    done.mark_as_completed("s1")
    planner.save(done)

    planner.save(planner.create("gamma"))

    assert planner.list() == [
        PlanInfo("alpha", "TODO", 2, 1),
        PlanInfo("beta", "DONE", 1, 1),
        PlanInfo("gamma", "TODO", 0, 0),
    ]
    assert planner.list()[1].to_dict() == {
        "name": "beta",
        "status": "DONE",
        "total_tasks": 1,
        "completed_tasks": 1,
    }


def test_remove_deletes_plans(planner):
    plan = planner.create("a")
    plan.add_step("s1", "one", ["crit"])
    planner.save(plan)
    planner.save(planner.create("b"))

    assert planner.remove(["a"]) == {"a": None}
    with pytest.raises(PlanNotFoundError):
        planner.get("a")
    assert [info.name for info in planner.list()] == ["b"]


def test_remove_is_all_or_nothing(planner):
    planner.save(planner.create("a"))
    results = planner.remove(["a", "missing"])
    assert results["a"] is None
    assert isinstance(results["missing"], PlannerError)
    assert planner.get("a").id == "a"


def test_compact_removes_completed_plans(planner):
    open_plan = planner.create("open")
    open_plan.add_step("s1", "one", None)
    planner.save(open_plan)

    finished = planner.create("finished")
    finished.add_step("s1", "one", ["c1"])
    finished.mark_as_completed("s1")
    planner.save(finished)

    planner.save(planner.create("empty"))

    planner.compact()
    assert [info.name for info in planner.list()] == ["open"]


def test_compact_with_nothing_to_remove(planner):
    plan = planner.create("open")
    plan.add_step("s1", "one", None)
    planner.save(plan)
    planner.compact()
    assert [info.name for info in planner.list()] == ["open"]


def test_plans_persist_across_connections(tmp_path):
    db_path = tmp_path / "plans.db"
    with Planner(db_path) as first:
        plan = first.create("kept")
        plan.add_step("s1", "one", ["x", "y"])
        first.save(plan)
    with Planner(db_path) as second:
        loaded = second.get("kept")
    assert loaded.steps == [Step("s1", "one", "TODO", ["x", "y"])]