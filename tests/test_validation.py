"""
Tests for utils/validation.py and utils/text.py.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from vault_tasks.errors import ValidationError
from vault_tasks.utils.text import clean_text, glob_to_regex, indent_depth, sanitize_owner
from vault_tasks.utils.validation import (
    validate_date,
    validate_line_index,
    validate_owner,
    validate_priority,
    validate_project,
    validate_stage,
    validate_tags,
    validate_task_text,
)


class TestDates:
    def test_valid(self):
        assert validate_date(" 2025-03-01 ") == "2025-03-01"

    def test_blank_is_none(self):
        assert validate_date("") is None
        assert validate_date(None) is None

    @pytest.mark.parametrize("value", ["2025-3-1", "03/01/2025", "2025-02-30", "2025-13-01"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_date(value)


class TestFields:
    def test_task_text_required(self):
        with pytest.raises(ValidationError):
            validate_task_text("  ")
        with pytest.raises(ValidationError):
            validate_task_text("x" * 1001)

    def test_owner(self):
        assert validate_owner("Mary O'Neil") == "Mary O'Neil"
        with pytest.raises(ValidationError):
            validate_owner("bob<script>")
        with pytest.raises(ValidationError):
            validate_owner("x" * 51)

    def test_project(self):
        assert validate_project("Website_v2") == "Website_v2"
        with pytest.raises(ValidationError):
            validate_project("a/b")

    def test_stage(self):
        assert validate_stage("In-Review") == "In-Review"
        assert validate_stage("Parked", ["Parked"]) == "Parked"
        with pytest.raises(ValidationError):
            validate_stage("in-review")

    def test_priority(self):
        assert validate_priority("LOW") == "low"
        with pytest.raises(ValidationError):
            validate_priority("urgent")

    def test_tags(self):
        assert validate_tags(["#Work", "work", "home"]) == ["work", "home"]
        with pytest.raises(ValidationError):
            validate_tags(["has space"])
        with pytest.raises(ValidationError):
            validate_tags([f"t{i}" for i in range(21)])


class TestLineIndex:
    def test_bounds(self):
        assert validate_line_index(2, 3) == 2
        assert validate_line_index(3, 3, allow_end=True) == 3
        with pytest.raises(ValidationError):
            validate_line_index(3, 3)
        with pytest.raises(ValidationError):
            validate_line_index(-1, 3)
        with pytest.raises(ValidationError):
            validate_line_index(True, 3)


class TestText:
    def test_clean_text(self):
        assert clean_text("**a | b: [c]**") == "a - b- (c)"

    def test_sanitize_owner(self):
        assert sanitize_owner("<b>Ann</b>!") == "Ann"

    def test_indent_depth(self):
        assert indent_depth("") == 0
        assert indent_depth("   ") == 1
        assert indent_depth("\t\t") == 2

    def test_glob(self):
        pattern = glob_to_regex("drafts/*.md")
        assert pattern.match("drafts/idea.md")
        assert not pattern.match("notes/drafts/idea.md")
