"""Unit tests for schema validation."""

import copy

import pytest

from project_tracker import validation
from project_tracker.errors import UnknownKindError
from project_tracker.schemas import BUG_SCHEMA, FEATURE_SCHEMA, TASK_SCHEMA
from project_tracker.validation import (
    FieldError,
    ValidationResult,
    compile_schema,
    validate,
    validate_item,
    validate_project_data,
)

TIMESTAMP = "2024-01-01T00:00:00Z"


def make_feature(**overrides):
    record = {
        "id": "1700000000000-abc123def",
        "type": "feature",
        "title": "Dark mode",
        "description": "Add a dark theme",
        "status": "backlog",
        "priority": "medium",
        "tags": ["ui"],
        "createdAt": TIMESTAMP,
        "updatedAt": TIMESTAMP,
        "acceptanceCriteria": ["Toggle in settings"],
    }
    record.update(overrides)
    return record


def make_bug(**overrides):
    record = {
        "id": "1700000000001-abc123def",
        "type": "bug",
        "title": "Login fails",
        "description": "",
        "status": "open",
        "priority": "high",
        "tags": [],
        "createdAt": TIMESTAMP,
        "updatedAt": TIMESTAMP,
        "severity": "high",
        "reproducible": True,
        "stepsToReproduce": ["open app", "click login"],
        "environment": "Chrome 120",
    }
    record.update(overrides)
    return record


def make_task(**overrides):
    record = {
        "id": "1700000000002-abc123def",
        "type": "task",
        "title": "Write docs",
        "description": "",
        "status": "todo",
        "priority": "low",
        "tags": [],
        "createdAt": TIMESTAMP,
        "updatedAt": TIMESTAMP,
        "subtasks": [],
    }
    record.update(overrides)
    return record


def make_project(**overrides):
    data = {
        "features": [make_feature()],
        "bugs": [make_bug()],
        "tasks": [make_task()],
        "metadata": {"projectName": "demo", "version": "1.0.0", "lastUpdated": TIMESTAMP},
    }
    data.update(overrides)
    return data


def paths(result):
    return [error.path for error in result.errors]


class TestValidResults:
    """Well-formed records pass."""

    def test_valid_records(self):
        assert validate(FEATURE_SCHEMA, make_feature()).valid
        assert validate(BUG_SCHEMA, make_bug()).valid
        assert validate(TASK_SCHEMA, make_task()).valid

    def test_optional_fields(self):
        assert validate(FEATURE_SCHEMA, make_feature(epic="Theming", storyPoints=21, assignee="sam")).valid
        assert validate(BUG_SCHEMA, make_bug(resolution="Fixed cookie domain")).valid
        assert validate(TASK_SCHEMA, make_task(dueDate="2024-02-29", estimatedHours=0, actualHours=2.5)).valid

    def test_result_shape(self):
        result = validate(TASK_SCHEMA, make_task())

        assert result == ValidationResult(valid=True)
        assert bool(result) is True
        assert result.to_dict() == {"valid": True}


class TestFieldErrors:
    """Each constraint kind is reported with the offending path."""

    def test_missing_required_field(self):
        record = make_bug()
        del record["environment"]

        result = validate(BUG_SCHEMA, record)

        assert not result.valid
        assert paths(result) == ["(root)"]
        assert "environment" in result.errors[0].message

    def test_missing_status_is_rejected(self):
        record = make_bug()
        del record["status"]

        result = validate(BUG_SCHEMA, record)

        assert not result.valid
        assert "status" in result.errors[0].message

    def test_wrong_type(self):
        result = validate(BUG_SCHEMA, make_bug(reproducible="yes"))
        assert paths(result) == ["reproducible"]

    def test_enum_membership(self):
        assert paths(validate(BUG_SCHEMA, make_bug(priority="urgent"))) == ["priority"]
        assert paths(validate(FEATURE_SCHEMA, make_feature(status="open"))) == ["status"]
        assert paths(validate(TASK_SCHEMA, make_task(status="backlog"))) == ["status"]

    def test_type_discriminant(self):
        assert paths(validate(TASK_SCHEMA, make_task(type="bug"))) == ["type"]

    @pytest.mark.parametrize("points", [0, 22, 0.5])
    def test_story_points_bounds(self, points):
        assert paths(validate(FEATURE_SCHEMA, make_feature(storyPoints=points))) == ["storyPoints"]

    def test_negative_hours(self):
        result = validate(TASK_SCHEMA, make_task(estimatedHours=-1, actualHours=-0.5))
        assert paths(result) == ["actualHours", "estimatedHours"]

    def test_string_length_bounds(self):
        assert paths(validate(TASK_SCHEMA, make_task(title=""))) == ["title"]
        assert paths(validate(TASK_SCHEMA, make_task(title="x" * 201))) == ["title"]
        assert validate(TASK_SCHEMA, make_task(title="x" * 200)).valid
        assert paths(validate(TASK_SCHEMA, make_task(description="x" * 2001))) == ["description"]

    def test_array_item_types(self):
        result = validate(FEATURE_SCHEMA, make_feature(tags=["ok", 3], acceptanceCriteria=[None]))
        assert paths(result) == ["acceptanceCriteria.0", "tags.1"]

    def test_unknown_field(self):
        result = validate(TASK_SCHEMA, make_task(colour="red"))
        assert paths(result) == ["(root)"]
        assert "colour" in result.errors[0].message

    @pytest.mark.parametrize("stamp", ["not-a-date", "2024-01-01", "2024-13-01T00:00:00Z", "2024-01-01 00:00:00"])
    def test_malformed_date_time(self, stamp):
        assert paths(validate(TASK_SCHEMA, make_task(createdAt=stamp))) == ["createdAt"]

    @pytest.mark.parametrize("due", ["2024-02-30", "tomorrow", "2024-01-01T00:00:00Z"])
    def test_malformed_date(self, due):
        assert paths(validate(TASK_SCHEMA, make_task(dueDate=due))) == ["dueDate"]

    def test_multiple_errors_are_sorted(self):
        result = validate(BUG_SCHEMA, make_bug(severity="huge", priority="none", tags="a,b"))
        assert paths(result) == ["priority", "severity", "tags"]

    def test_error_to_dict(self):
        result = validate(TASK_SCHEMA, make_task(priority="none"))

        payload = result.to_dict()
        assert payload["valid"] is False
        assert payload["errors"][0]["path"] == "priority"
        assert isinstance(result.errors[0], FieldError)


class TestMalformedInput:
    """Validation reports failures instead of raising."""

    @pytest.mark.parametrize("value", [None, 42, "bug", [], {"nested": {"deep": object}}])
    def test_non_record_values(self, value):
        result = validate(BUG_SCHEMA, value)
        assert result.valid is False
        assert result.errors


class TestCompileSchema:
    """Compiled checkers are reusable."""

    def test_cached_per_schema(self):
        assert compile_schema(BUG_SCHEMA) is compile_schema(BUG_SCHEMA)

    def test_distinct_schema_objects(self):
        clone = copy.deepcopy(BUG_SCHEMA)
        assert compile_schema(clone) is not compile_schema(BUG_SCHEMA)
        assert compile_schema(clone)(make_bug()).valid

    def test_cache_is_bounded(self):
        clones = [copy.deepcopy(TASK_SCHEMA) for _ in range(validation.CHECKER_CACHE_SIZE + 10)]

        for clone in clones:
            assert validate(clone, make_task()).valid

        assert len(validation._checker_cache) <= validation.CHECKER_CACHE_SIZE
        assert validate(clones[0], make_task(status="done")).errors[0].path == "status"


class TestValidateItem:
    def test_dispatches_on_kind(self):
        assert validate_item("bug", make_bug()).valid
        assert not validate_item("task", make_bug()).valid

    def test_unknown_kind(self):
        with pytest.raises(UnknownKindError):
            validate_item("epic", make_bug())


class TestValidateProjectData:
    """Aggregate validation recurses into every collection."""

    def test_valid_project(self):
        assert validate_project_data(make_project()).valid

    def test_nested_error_paths(self):
        data = make_project(bugs=[make_bug(), make_bug(id="2-b", severity="huge")])

        assert paths(validate_project_data(data)) == ["bugs.1.severity"]

    def test_wrong_kind_in_collection(self):
        data = make_project(tasks=[make_feature()])

        result = validate_project_data(data)
        assert not result.valid
        assert all(path.startswith("tasks.0") for path in paths(result))

    def test_missing_collection(self):
        data = make_project()
        del data["tasks"]

        result = validate_project_data(data)
        assert not result.valid
        assert "tasks" in result.errors[0].message

    def test_bad_metadata(self):
        data = make_project(metadata={"projectName": "", "version": "1.0.0", "lastUpdated": "yesterday"})

        assert paths(validate_project_data(data)) == ["metadata.lastUpdated", "metadata.projectName"]

    def test_duplicate_ids_within_collection(self):
        data = make_project(features=[make_feature(), make_feature(title="Copy")])

        result = validate_project_data(data)
        assert paths(result) == ["features.1.id"]
        assert "duplicate id" in result.errors[0].message

    def test_same_id_across_collections_allowed(self):
        data = make_project(bugs=[make_bug(id="shared")], tasks=[make_task(id="shared")])

        assert validate_project_data(data).valid

    def test_non_dict_aggregate(self):
        assert not validate_project_data(["features"]).valid
