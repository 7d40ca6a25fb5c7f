"""Tests for orchestra.core.utils.text."""

from orchestra.core.utils.text import preview, slugify_goal


def test_preview_keeps_short_text():
    assert preview("hello", 10) == "hello"
    assert preview("", 10) == ""
    assert preview(None, 10) == ""


def test_preview_appends_marker_after_limit():
    assert preview("abcdefghij", 4) == "abcd..."
    assert preview("abcdefghij", 4, marker=" [cut]") == "abcd [cut]"


def test_slugify_goal():
    assert slugify_goal("Build a todo app!") == "Build-a-todo-app"


def test_slugify_goal_uses_first_thirty_characters():
    name = slugify_goal("Create a static website for my bakery with a menu page")
    assert name == "Create-a-static-website-for-my"


def test_slugify_goal_keeps_dashes_and_underscores():
    assert slugify_goal("snake_case  and-dash") == "snake_case-and-dash"


def test_slugify_goal_default():
    assert slugify_goal("!!!") == "New-Project"
    assert slugify_goal("") == "New-Project"
