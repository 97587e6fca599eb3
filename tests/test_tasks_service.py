import pytest

from services.tasks import DependencyError, TaskService
from storage.local_store import RecordNotFound


@pytest.fixture()
def tasks(store):
    return TaskService(store)


def test_create_marks_row_dirty(tasks, store):
    created = tasks.create("u1", "  Read chapter 3  ", emit=False)

    stored = store.get("tasks", created["id"])
    assert stored["title"] == "Read chapter 3"
    assert stored["is_dirty"] == 1
    assert stored["last_synced_at"] is None
    assert stored["metadata"] == {}


def test_create_requires_title_and_owner(tasks):
    with pytest.raises(ValueError):
        tasks.create("u1", "   ")
    with pytest.raises(ValueError):
        tasks.create("", "Title")


def test_update_marks_clean_row_dirty_again(tasks, store):
    created = tasks.create("u1", "Essay", emit=False)
    store.mark_synced("tasks", created["id"], "2024-05-01T00:00:00.000Z")

    tasks.update(created["id"], description="first draft", emit=False)

    stored = store.get("tasks", created["id"])
    assert stored["description"] == "first draft"
    assert stored["is_dirty"] == 1


def test_update_missing_task_raises(tasks):
    with pytest.raises(RecordNotFound):
        tasks.update("ghost", title="x")


def test_listeners_receive_task_ids(tasks):
    seen = []

    def listener(task_id):
        seen.append(task_id)

    TaskService.subscribe("after_create", listener)
    try:
        created = tasks.create("u1", "Observed")
    finally:
        TaskService.unsubscribe("after_create", listener)
    tasks.create("u1", "Not observed")

    assert seen == [created["id"]]


def test_unknown_event_is_rejected():
    with pytest.raises(ValueError):
        TaskService.subscribe("before_lunch", lambda _: None)


def test_delete_unsynced_task_removes_it(tasks, store):
    created = tasks.create("u1", "Scratch", emit=False)

    assert tasks.delete(created["id"], emit=False) is True
    assert store.get("tasks", created["id"]) is None


def test_delete_synced_task_leaves_tombstone(tasks, store):
    created = tasks.create("u1", "Shared", emit=False)
    store.mark_synced("tasks", created["id"], "2024-05-01T00:00:00.000Z")

    tasks.delete(created["id"], emit=False)

    assert tasks.get(created["id"]) is None
    raw = store.get("tasks", created["id"])
    assert raw["is_deleted"] == 1
    assert raw["is_dirty"] == 1
    assert tasks.list_for_owner("u1") == []


def test_parent_progress_is_rounded_average(tasks, store):
    parent = tasks.create("u1", "Project", emit=False)
    tasks.create("u1", "A", parent_id=parent["id"], progress_percent=50, emit=False)
    tasks.create("u1", "B", parent_id=parent["id"], progress_percent=25, emit=False)

    rolled = store.get("tasks", parent["id"])
    assert rolled["progress_percent"] == 38
    assert not rolled["is_completed"]


def test_parent_completes_when_all_children_complete(tasks, store):
    parent = tasks.create("u1", "Project", emit=False)
    a = tasks.create("u1", "A", parent_id=parent["id"], emit=False)
    b = tasks.create("u1", "B", parent_id=parent["id"], emit=False)

    tasks.set_completed(a["id"])
    assert not store.get("tasks", parent["id"])["is_completed"]

    tasks.set_completed(b["id"])
    rolled = store.get("tasks", parent["id"])
    assert rolled["is_completed"]
    assert rolled["progress_percent"] == 100
    assert rolled["completed_at"]
    assert rolled["is_dirty"] == 1


def test_progress_rolls_up_through_grandparents(tasks, store):
    root = tasks.create("u1", "Root", emit=False)
    mid = tasks.create("u1", "Mid", parent_id=root["id"], emit=False)
    leaf = tasks.create("u1", "Leaf", parent_id=mid["id"], emit=False)

    tasks.update(leaf["id"], progress_percent=80, emit=False)

    assert store.get("tasks", mid["id"])["progress_percent"] == 80
    assert store.get("tasks", root["id"])["progress_percent"] == 80


def test_start_before_predecessor_end_is_rejected(tasks):
    first = tasks.create(
        "u1",
        "Design",
        start_date="2024-06-01T00:00:00.000Z",
        end_date="2024-06-10T00:00:00.000Z",
        emit=False,
    )
    second = tasks.create(
        "u1",
        "Build",
        start_date="2024-06-11T00:00:00.000Z",
        dependency_ids=[first["id"]],
        emit=False,
    )

    with pytest.raises(DependencyError) as info:
        tasks.update(second["id"], start_date="2024-06-05T00:00:00.000Z", emit=False)

    assert '"Design" must finish' in str(info.value)
    assert info.value.predecessor_id == first["id"]


def test_create_with_conflicting_dependency_is_rejected(tasks, store):
    first = tasks.create("u1", "Design", end_date="2024-06-10T00:00:00.000Z", emit=False)

    with pytest.raises(DependencyError):
        tasks.create(
            "u1",
            "Build",
            id="build",
            start_date="2024-06-01T00:00:00.000Z",
            dependency_ids=[first["id"]],
            emit=False,
        )
    assert store.get("tasks", "build") is None
