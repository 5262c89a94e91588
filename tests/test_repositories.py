from datetime import datetime, timezone

import pytest

from tasks_api.query import build_filter, build_ordering
from tasks_api.repositories import InMemoryRepository, TaskQuery
from tasks_api.schemas import TaskCreate, TaskUpdate
from tasks_api.stats import aggregate_stats

from conftest import OTHER, OWNER


def create(repo, owner=OWNER, **fields):
    fields.setdefault("title", "Task")
    return repo.create(owner, TaskCreate(**fields))


def list_all(repo, owner=OWNER, sort_by=None, order=None, skip=0, take=100, **filters):
    query = TaskQuery(
        filter=build_filter(owner, **filters),
        ordering=build_ordering(sort_by, order),
        skip=skip,
        take=take,
    )
    return repo.list(query)


class TestCrud:
    def test_create_applies_defaults(self, repo):
        task = create(repo, title="  Write tests  ")
        assert task["title"] == "Write tests"
        assert task["owner"] == OWNER
        assert task["status"] == "pending"
        assert task["priority"] == "medium"
        assert task["tags"] == []
        assert task["completed_at"] is None
        assert task["created_at"] == task["updated_at"]

    def test_get_and_delete(self, repo):
        task = create(repo)
        assert repo.get(task["id"])["id"] == task["id"]
        assert repo.delete(task["id"]) is True
        assert repo.get(task["id"]) is None
        assert repo.delete(task["id"]) is False

    def test_update_missing_returns_none(self, repo):
        assert repo.update("nope", {"title": "x"}) is None

    def test_partial_update_leaves_absent_fields(self, repo):
        task = create(repo, description="keep me", priority="high", tags=["a", "b"])
        changes = TaskUpdate(title="Renamed").changes()
        updated = repo.update(task["id"], changes)
        assert updated["title"] == "Renamed"
        assert updated["description"] == "keep me"
        assert updated["priority"] == "high"
        assert updated["tags"] == ["a", "b"]
        assert updated["owner"] == OWNER
        assert updated["updated_at"] >= task["updated_at"]

    def test_explicit_null_clears(self, repo):
        task = create(repo, description="text", due_date="2030-05-01", tags=["x"])
        changes = TaskUpdate.model_validate({"description": None, "dueDate": None, "tags": None}).changes()
        updated = repo.update(task["id"], changes)
        assert updated["description"] is None
        assert updated["due_date"] is None
        assert updated["tags"] == []

    def test_tags_keep_order(self, repo):
        task = create(repo, tags=[" work ", "", "home", "urgent"])
        assert repo.get(task["id"])["tags"] == ["work", "home", "urgent"]

    def test_returned_tags_are_not_shared_with_the_store(self, repo):
        task = create(repo, tags=["a"])
        task["tags"].append("leaked")
        fetched = repo.get(task["id"])
        fetched["tags"].append("leaked")
        listed, _ = list_all(repo)
        listed[0]["tags"].clear()
        assert repo.get(task["id"])["tags"] == ["a"]

    def test_due_date_round_trips_as_utc(self, repo):
        task = create(repo, due_date="2030-05-01")
        assert repo.get(task["id"])["due_date"] == datetime(2030, 5, 1, tzinfo=timezone.utc)


class TestCompletedAt:
    def test_set_when_created_completed(self, repo):
        task = create(repo, status="completed")
        assert task["completed_at"] is not None

    def test_set_on_first_completion_only(self, repo):
        task = create(repo)
        first = repo.update(task["id"], {"status": "completed"})
        stamp = first["completed_at"]
        assert stamp is not None

        again = repo.update(task["id"], {"title": "still done"})
        assert again["completed_at"] == stamp

        recompleted = repo.update(task["id"], {"status": "completed"})
        assert recompleted["completed_at"] == stamp

    def test_not_cleared_when_moved_back_to_pending(self, repo):
        task = create(repo, status="completed")
        renewed = repo.update(task["id"], {"status": "pending", "due_date": None})
        assert renewed["status"] == "pending"
        assert renewed["completed_at"] == task["completed_at"]

    def test_any_status_may_follow_any_other(self, repo):
        task = create(repo, status="cancelled")
        for s in ("completed", "in-progress", "pending", "cancelled"):
            assert repo.update(task["id"], {"status": s})["status"] == s


class TestList:
    def seed(self, repo):
        create(repo, title="Buy milk", description="From the corner shop", priority="low")
        create(repo, title="Write report", status="in-progress", priority="high")
        create(repo, title="File taxes", description="Annual REPORT for office", status="completed", priority="urgent")
        create(repo, title="Call mom", status="pending", priority="high")
        create(repo, owner=OTHER, title="Report for bob", priority="high")

    def test_only_owner_tasks(self, repo):
        self.seed(repo)
        items, total = list_all(repo)
        assert total == 4
        assert all(t["owner"] == OWNER for t in items)

    def test_search_title_or_description(self, repo):
        self.seed(repo)
        items, total = list_all(repo, search="report")
        assert total == 2
        assert {t["title"] for t in items} == {"Write report", "File taxes"}
        for t in items:
            assert "report" in t["title"].lower() or "report" in (t["description"] or "").lower()

    def test_search_folds_non_ascii_case(self, repo):
        create(repo, title="Élan École")
        create(repo, title="Plain", description="ÜBER wichtig")
        create(repo, title="ecole without accent")

        items, total = list_all(repo, search="école")
        assert total == 1
        assert items[0]["title"] == "Élan École"

        _, total = list_all(repo, search="über")
        assert total == 1

    def test_search_treats_wildcards_literally(self, repo):
        create(repo, title="100% done")
        create(repo, title="1000 done")
        items, total = list_all(repo, search="0%")
        assert total == 1
        assert items[0]["title"] == "100% done"

    def test_status_and_priority_filters(self, repo):
        self.seed(repo)
        items, _ = list_all(repo, status="pending")
        assert items and all(t["status"] == "pending" for t in items)

        items, total = list_all(repo, status="pending", priority="high")
        assert total == 1
        assert items[0]["title"] == "Call mom"

        _, total = list_all(repo, status="not-a-status")
        assert total == 0

    def test_default_order_is_newest_first(self, repo):
        self.seed(repo)
        items, _ = list_all(repo)
        created = [t["created_at"] for t in items]
        assert created == sorted(created, reverse=True)
        assert items[0]["title"] == "Call mom"

    def test_ascending_title(self, repo):
        self.seed(repo)
        items, _ = list_all(repo, sort_by="title", order="asc")
        assert [t["title"] for t in items] == ["Buy milk", "Call mom", "File taxes", "Write report"]

    def test_unknown_sort_field_keeps_insertion_order(self, repo):
        self.seed(repo)
        asc, _ = list_all(repo, sort_by="colour", order="asc")
        assert [t["title"] for t in asc] == ["Buy milk", "Write report", "File taxes", "Call mom"]
        desc, _ = list_all(repo, sort_by="colour")
        assert [t["title"] for t in desc] == ["Call mom", "File taxes", "Write report", "Buy milk"]

    def test_null_due_dates_sort_first_ascending(self, repo):
        create(repo, title="later", due_date="2031-01-01")
        create(repo, title="none")
        create(repo, title="sooner", due_date="2030-01-01")
        asc, _ = list_all(repo, sort_by="dueDate", order="asc")
        assert [t["title"] for t in asc] == ["none", "sooner", "later"]
        desc, _ = list_all(repo, sort_by="dueDate", order="desc")
        assert [t["title"] for t in desc] == ["later", "sooner", "none"]

    def test_window(self, repo):
        for i in range(25):
            create(repo, title=f"Task {i:02d}")
        page, total = list_all(repo, sort_by="title", order="asc", skip=10, take=10)
        assert total == 25
        assert [t["title"] for t in page] == [f"Task {i:02d}" for i in range(10, 20)]
        last, _ = list_all(repo, sort_by="title", order="asc", skip=20, take=10)
        assert len(last) == 5


class TestStats:
    def test_groups_only_present_values(self, repo):
        create(repo, status="pending", priority="high")
        create(repo, status="pending", priority="low")
        create(repo, status="completed", priority="high")
        create(repo, owner=OTHER, status="cancelled")

        stats = aggregate_stats(repo, OWNER)
        assert stats["total"] == 3
        assert sorted((g["key"], g["count"]) for g in stats["by_status"]) == [
            ("completed", 1),
            ("pending", 2),
        ]
        assert sorted((g["key"], g["count"]) for g in stats["by_priority"]) == [
            ("high", 2),
            ("low", 1),
        ]

    def test_empty_owner(self, repo):
        assert aggregate_stats(repo, "nobody") == {"total": 0, "by_status": [], "by_priority": []}

    def test_rejects_other_fields(self):
        with pytest.raises(ValueError):
            InMemoryRepository().group_counts(OWNER, "title")
