import os
from datetime import datetime, timedelta

from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from todo_api.main import app  # noqa: E402
from todo_api.repositories import InMemoryRepository, get_repository  # noqa: E402
from todo_api.utils import utcnow  # noqa: E402

client = TestClient(app)

WIRE_KEYS = {"id", "todo_title", "todo_description", "todo_created_at", "todo_due_at", "todo_completed"}


def create_todo_payload(
    title="Test Task",
    description="Do something",
    completed=False,
    due_at=None,
):
    payload = {
        "todo_title": title,
        "todo_description": description,
        "todo_completed": completed,
    }
    if due_at is not None:
        payload["todo_due_at"] = due_at
    return payload


def assert_todo_shape(todo: dict):
    # Exactly the wire names, nothing else
    assert set(todo.keys()) == WIRE_KEYS
    assert isinstance(todo["id"], int)
    assert isinstance(todo["todo_title"], str)
    assert isinstance(todo["todo_completed"], bool)
    # Timestamps are ISO8601 local date-time text without an offset
    created = datetime.fromisoformat(todo["todo_created_at"])
    assert created.tzinfo is None
    if todo["todo_due_at"] is not None:
        datetime.fromisoformat(todo["todo_due_at"])


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestTodosCRUD:
    def test_create_todo_minimal(self):
        before = utcnow()
        res = client.post("/api/v1/todos/", json={"todo_title": "Buy milk"})
        after = utcnow()
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        assert todo["todo_title"] == "Buy milk"
        assert todo["todo_description"] is None
        assert todo["todo_completed"] is False
        assert todo["todo_due_at"] is None
        created = datetime.fromisoformat(todo["todo_created_at"])
        assert before <= created <= after

    def test_create_write_report_scenario(self):
        res = client.post(
            "/api/v1/todos/",
            json={"todo_title": "Write report", "todo_due_at": "2025-01-10T00:00:00"},
        )
        assert res.status_code == 201
        todo = res.json()
        assert todo["id"] >= 1
        assert todo["todo_due_at"] == "2025-01-10T00:00:00"
        assert todo["todo_completed"] is False
        assert todo["todo_description"] is None

    def test_create_with_due_date_string(self):
        payload = create_todo_payload(title="Pay bills", description="Electricity", due_at="2099-12-25")
        res = client.post("/api/v1/todos/", json=payload)
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        # Due date should be promoted to midnight
        assert todo["todo_due_at"] == "2099-12-25T00:00:00"

    def test_create_keeps_supplied_created_at(self):
        payload = create_todo_payload(title="Backfilled")
        payload["todo_created_at"] = "2020-05-01T08:30:00"
        res = client.post("/api/v1/todos/", json=payload)
        assert res.status_code == 201
        assert res.json()["todo_created_at"] == "2020-05-01T08:30:00"

    def test_client_supplied_id_is_ignored(self):
        payload = create_todo_payload(title="Sneaky")
        payload["id"] = 987654
        res = client.post("/api/v1/todos/", json=payload)
        assert res.status_code == 201
        tid = res.json()["id"]
        assert tid != 987654
        assert client.get("/api/v1/todos/987654").status_code == 404

    def test_ids_are_monotonic(self):
        first = client.post("/api/v1/todos/", json=create_todo_payload(title="One")).json()["id"]
        second = client.post("/api/v1/todos/", json=create_todo_payload(title="Two")).json()["id"]
        assert second > first

    def test_get_todo_and_not_found(self):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(title="Read book"))
        assert res_create.status_code == 201
        todo = res_create.json()
        tid = todo["id"]

        res_get = client.get(f"/api/v1/todos/{tid}")
        assert res_get.status_code == 200
        fetched = res_get.json()
        assert fetched == todo

        res_404 = client.get("/api/v1/todos/999999")
        assert res_404.status_code == 404
        assert res_404.json()["detail"] == "Todo not found"

    def test_put_replace_todo(self):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(title="Initial", description="A"))
        assert res_create.status_code == 201
        created = res_create.json()
        tid = created["id"]

        new_payload = create_todo_payload(title="Replaced", description=None, completed=True, due_at="2100-01-01")
        # created_at in a replacement is ignored
        new_payload["todo_created_at"] = "1999-01-01T00:00:00"
        res_put = client.put(f"/api/v1/todos/{tid}", json=new_payload)
        assert res_put.status_code == 200
        updated = res_put.json()
        assert updated["id"] == tid
        assert updated["todo_title"] == "Replaced"
        assert updated["todo_description"] is None
        assert updated["todo_completed"] is True
        assert updated["todo_due_at"].startswith("2100-01-01")
        assert updated["todo_created_at"] == created["todo_created_at"]

        res_put_nf = client.put("/api/v1/todos/424242", json=new_payload)
        assert res_put_nf.status_code == 404
        assert res_put_nf.json()["detail"] == "Todo not found"

    def test_patch_partial_update(self):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(title="Partial", description="X"))
        assert res_create.status_code == 201
        created = res_create.json()
        tid = created["id"]

        patch_payload = {"todo_title": "Partial Updated", "todo_completed": True}
        res_patch = client.patch(f"/api/v1/todos/{tid}", json=patch_payload)
        assert res_patch.status_code == 200
        patched = res_patch.json()
        assert patched["id"] == tid
        assert patched["todo_title"] == "Partial Updated"
        assert patched["todo_completed"] is True
        # description and created_at should remain unchanged
        assert patched["todo_description"] == "X"
        assert patched["todo_created_at"] == created["todo_created_at"]

        # completed toggles back freely
        res_back = client.patch(f"/api/v1/todos/{tid}", json={"todo_completed": False})
        assert res_back.json()["todo_completed"] is False

        res_patch_nf = client.patch("/api/v1/todos/123456", json={"todo_title": "Nope"})
        assert res_patch_nf.status_code == 404
        assert res_patch_nf.json()["detail"] == "Todo not found"

    def test_patch_null_clears_due_at(self):
        res_create = client.post(
            "/api/v1/todos/", json=create_todo_payload(title="Has due", due_at="2030-03-03")
        )
        tid = res_create.json()["id"]
        res_patch = client.patch(f"/api/v1/todos/{tid}", json={"todo_due_at": None})
        assert res_patch.status_code == 200
        assert res_patch.json()["todo_due_at"] is None

    def test_delete_todo(self):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(title="ToDelete"))
        tid = res_create.json()["id"]

        res_del = client.delete(f"/api/v1/todos/{tid}")
        assert res_del.status_code == 204
        assert res_del.text == ""

        res_get = client.get(f"/api/v1/todos/{tid}")
        assert res_get.status_code == 404
        res_del_again = client.delete(f"/api/v1/todos/{tid}")
        assert res_del_again.status_code == 404
        assert res_del_again.json()["detail"] == "Todo not found"

        # ids are not reused after deletion
        res_next = client.post("/api/v1/todos/", json=create_todo_payload(title="After delete"))
        assert res_next.json()["id"] > tid


class TestListPaginationFilteringSorting:
    def seed_todos(self, count=10):
        # The in-memory repository persists for the whole module, so seed fresh rows
        base = datetime.now()
        created_ids = []
        for i in range(count):
            due = (base + timedelta(days=i)).date().isoformat()
            payload = create_todo_payload(
                title=f"Task {i}",
                description=f"Desc {i}",
                completed=(i % 2 == 0),
                due_at=due,
            )
            res = client.post("/api/v1/todos/", json=payload)
            assert res.status_code == 201
            created_ids.append(res.json()["id"])
        return created_ids

    def test_list_basic_pagination(self):
        self.seed_todos(7)
        res1 = client.get("/api/v1/todos/?limit=3&offset=0")
        assert res1.status_code == 200
        page1 = res1.json()
        assert "items" in page1 and "total" in page1
        assert page1["limit"] == 3
        assert page1["offset"] == 0
        assert page1["total"] >= 7
        assert len(page1["items"]) == 3
        for item in page1["items"]:
            assert_todo_shape(item)

        res2 = client.get("/api/v1/todos/?limit=3&offset=3")
        assert res2.status_code == 200
        page2 = res2.json()
        assert page2["limit"] == 3
        assert page2["offset"] == 3
        assert len(page2["items"]) == 3
        ids1 = {t["id"] for t in page1["items"]}
        ids2 = {t["id"] for t in page2["items"]}
        assert ids1.isdisjoint(ids2)

    def test_list_filter_completed_true_false(self):
        self.seed_todos(6)

        res_true = client.get("/api/v1/todos/?completed=true&limit=100")
        assert res_true.status_code == 200
        data_true = res_true.json()
        assert data_true["items"]
        assert all(item["todo_completed"] is True for item in data_true["items"])

        res_false = client.get("/api/v1/todos/?completed=false&limit=100")
        assert res_false.status_code == 200
        data_false = res_false.json()
        assert data_false["items"]
        assert all(item["todo_completed"] is False for item in data_false["items"])

    def test_list_search_q_matches_title_and_description(self):
        self.seed_todos(5)
        res_title = client.get("/api/v1/todos/?q=task 1&limit=100")
        assert res_title.status_code == 200
        data_title = res_title.json()
        assert data_title["items"]
        assert all("task 1" in item["todo_title"].lower() for item in data_title["items"])

        res_desc = client.get("/api/v1/todos/?q=Desc 2&limit=100")
        assert res_desc.status_code == 200
        data_desc = res_desc.json()
        assert any("Desc 2" in (item["todo_description"] or "") for item in data_desc["items"])

    def test_list_sort_and_order(self):
        self.seed_todos(5)
        res_default = client.get("/api/v1/todos/?limit=5")
        assert res_default.status_code == 200
        default_items = res_default.json()["items"]
        created_ts = [datetime.fromisoformat(t["todo_created_at"]) for t in default_items]
        assert created_ts == sorted(created_ts, reverse=True)

        res_asc = client.get("/api/v1/todos/?sort=created_at&limit=5")
        assert res_asc.status_code == 200
        items_asc = res_asc.json()["items"]
        created_ts_asc = [datetime.fromisoformat(t["todo_created_at"]) for t in items_asc]
        assert created_ts_asc == sorted(created_ts_asc)

        res_order_desc = client.get("/api/v1/todos/?sort=created_at&order=desc&limit=5")
        assert res_order_desc.status_code == 200
        items_order_desc = res_order_desc.json()["items"]
        created_ts_desc = [datetime.fromisoformat(t["todo_created_at"]) for t in items_order_desc]
        assert created_ts_desc == sorted(created_ts_desc, reverse=True)

    def test_list_sort_by_due_at(self):
        self.seed_todos(4)
        res = client.get("/api/v1/todos/?sort=-due_at&limit=4")
        assert res.status_code == 200
        dues = [datetime.fromisoformat(t["todo_due_at"]) for t in res.json()["items"]]
        assert dues == sorted(dues, reverse=True)

    def test_list_invalid_order_param(self):
        res = client.get("/api/v1/todos/?order=invalid")
        assert res.status_code == 400
        data = res.json()
        assert data["detail"] == "order must be 'asc' or 'desc'"


class TestValidationErrors:
    def test_create_validation_error_title_blank(self):
        for title in ("", "   "):
            res = client.post("/api/v1/todos/", json={"todo_title": title, "todo_description": "x"})
            assert res.status_code == 422
            body = res.json()
            assert body.get("error") == "ValidationError"
            assert body.get("message") == "Request validation failed"
            assert isinstance(body.get("detail"), list)

    def test_create_validation_error_title_null(self):
        before = client.get("/api/v1/todos/?limit=0").json()["total"]
        res = client.post("/api/v1/todos/", json={"todo_title": None})
        assert res.status_code == 422
        assert res.json().get("error") == "ValidationError"
        after = client.get("/api/v1/todos/?limit=0").json()["total"]
        assert after == before

    def test_internal_attribute_names_are_not_wire_names(self):
        # "title" is the attribute name; the wire requires "todo_title"
        res = client.post("/api/v1/todos/", json={"title": "Wrong key"})
        assert res.status_code == 422

    def test_patch_blank_title_rejected(self):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(title="Keep me"))
        tid = res_create.json()["id"]
        res_patch = client.patch(f"/api/v1/todos/{tid}", json={"todo_title": "  "})
        assert res_patch.status_code == 422
        assert client.get(f"/api/v1/todos/{tid}").json()["todo_title"] == "Keep me"

    def test_patch_validation_error_bad_due_date(self):
        res_create = client.post("/api/v1/todos/", json=create_todo_payload(title="Due date bad"))
        assert res_create.status_code == 201
        tid = res_create.json()["id"]

        res_patch = client.patch(f"/api/v1/todos/{tid}", json={"todo_due_at": "not-a-date"})
        assert res_patch.status_code == 422
        body = res_patch.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_record_validation_error_rendered_as_422(self):
        class BlankingRepository(InMemoryRepository):
            # Simulates a record reaching storage with a blank title
            def create(self, record):
                record.title = "   "
                return super().create(record)

        repo = BlankingRepository()
        app.dependency_overrides[get_repository] = lambda: repo
        try:
            res = client.post("/api/v1/todos/", json={"todo_title": "Looks fine"})
        finally:
            app.dependency_overrides.clear()
        assert res.status_code == 422
        body = res.json()
        assert body["error"] == "ValidationError"
        assert body["message"] == "blank title"
        assert body["detail"][0]["loc"] == ["body", "title"]
        assert repo.list()[1] == 0
