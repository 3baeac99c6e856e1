"""Tests for analyze_fix.py - case conversion and the naming/cleanup/safe-area fixers."""

from __future__ import annotations

import pytest

import analyze_fix
from analyze_fix import (
    AnalyzeIssue,
    AnalyzeIssueKind,
    convert_case,
    fix_all_analyze_issues,
    fix_analyze_issue,
    split_words,
)
from errors import RequestValidationError


def _make_issue(node, kind: AnalyzeIssueKind, suggestion: str | None = None) -> AnalyzeIssue:
    return AnalyzeIssue(node_id=node.id, node_name=node.name, node_type=node.type,
                        kind=kind, suggestion=suggestion)


# ─── Case conversion ───────────────────────────────────────────────────────

class TestCaseConversion:
    @pytest.mark.parametrize("name,words", [
        ("userProfileCard", ["user", "Profile", "Card"]),
        ("HTTPServer", ["HTTP", "Server"]),
        ("user-profile_card name", ["user", "profile", "card", "name"]),
        ("", []),
    ])
    def test_split_words(self, name, words):
        assert split_words(name) == words

    @pytest.mark.parametrize("name,target,expected", [
        ("userProfile", "snake_case", "user_profile"),
        ("user_profile", "camelCase", "userProfile"),
        ("user-profile", "PascalCase", "UserProfile"),
        ("UserProfile", "kebab-case", "user-profile"),
        ("HTTPServer", "snake_case", "http_server"),
    ])
    def test_convert_case(self, name, target, expected):
        assert convert_case(name, target) == expected

    def test_unknown_style_raises(self):
        with pytest.raises(RequestValidationError):
            convert_case("userProfile", "SCREAMING_CASE")


# ─── Single fixes ──────────────────────────────────────────────────────────

class TestRenameFixes:
    def test_non_ascii_rename_then_nothing_left(self, document):
        node = document.create_frame(name="Başlık")
        issue = _make_issue(node, AnalyzeIssueKind.NON_ASCII_CHARS)

        first = fix_analyze_issue(document, issue)
        second = fix_analyze_issue(document, issue)

        assert first.success
        assert node.name == "Baslik"
        assert not second.success
        assert second.error == "No characters to transliterate found"

    def test_case_fix_then_already_in_case(self, document):
        node = document.create_frame(name="UserAvatar")
        issue = _make_issue(node, AnalyzeIssueKind.CASE_INCONSISTENCY, "Convert to snake_case")

        first = fix_analyze_issue(document, issue)
        second = fix_analyze_issue(document, issue)

        assert first.success
        assert node.name == "user_avatar"
        assert not second.success
        assert second.error == "Name is already in target case"

    @pytest.mark.parametrize("suggestion", [None, "Convert to Title Case", "make it nicer"])
    def test_bad_suggestion_fails(self, document, suggestion):
        node = document.create_frame(name="UserAvatar")
        result = fix_analyze_issue(document, _make_issue(node, AnalyzeIssueKind.CASE_INCONSISTENCY, suggestion))
        assert not result.success
        assert node.name == "UserAvatar"


class TestRemovalFixes:
    def test_empty_frame_is_removed(self, document):
        node = document.create_frame(name="Empty", width=10, height=10)
        result = fix_analyze_issue(document, _make_issue(node, AnalyzeIssueKind.EMPTY_FRAME))
        assert result.success
        assert document.get_node(node.id) is None

    def test_frame_that_gained_content_is_kept(self, document):
        node = document.create_frame(name="Empty", width=10, height=10)
        issue = _make_issue(node, AnalyzeIssueKind.EMPTY_FRAME)
        document.create_node("RECTANGLE", parent=node)
        result = fix_analyze_issue(document, issue)
        assert not result.success
        assert "no longer empty" in result.error
        assert document.exists(node)

    def test_zero_size_is_removed(self, document):
        node = document.create_node("RECTANGLE", name="Divider", width=0, height=1)
        assert fix_analyze_issue(document, _make_issue(node, AnalyzeIssueKind.ZERO_SIZE)).success
        assert document.get_node(node.id) is None

    def test_resized_node_is_kept(self, document):
        node = document.create_node("RECTANGLE", name="Divider", width=0, height=1)
        issue = _make_issue(node, AnalyzeIssueKind.ZERO_SIZE)
        document.resize(node, 100, 1)
        result = fix_analyze_issue(document, issue)
        assert not result.success
        assert document.exists(node)


class TestSafeAreaFix:
    def test_wraps_screen(self, document):
        screen = document.create_frame(name="Home", width=390, height=844)
        document.create_text("Title", parent=screen)
        document.create_text("Body", parent=screen)

        result = fix_analyze_issue(document, _make_issue(screen, AnalyzeIssueKind.MISSING_SAFEAREA_FRAME))

        assert result.success
        assert "wrapped 2" in result.detail
        assert len(screen.children) == 1

    def test_existing_wrapper_fails(self, document):
        screen = document.create_frame(name="Home", width=390, height=844)
        document.create_frame(parent=screen, name="safearea")
        result = fix_analyze_issue(document, _make_issue(screen, AnalyzeIssueKind.MISSING_SAFEAREA_FRAME))
        assert not result.success
        assert "already exists" in result.error


# ─── Batch / dispatch ──────────────────────────────────────────────────────

class TestFixAll:
    def test_mixed_batch(self, document):
        a = document.create_frame(name="Ünite")
        b = document.create_frame(name="Empty", width=10, height=10)
        missing = document.create_frame(name="Gone")
        issues = [
            _make_issue(a, AnalyzeIssueKind.NON_ASCII_CHARS),
            _make_issue(missing, AnalyzeIssueKind.EMPTY_FRAME),
            _make_issue(b, AnalyzeIssueKind.EMPTY_FRAME),
        ]
        document.remove(missing)

        results = fix_all_analyze_issues(document, issues)

        assert [r.success for r in results] == [True, False, True]
        assert a.name == "Unite"
        assert document.get_node(b.id) is None

    def test_issue_parses_plugin_payload(self):
        issue = AnalyzeIssue.model_validate({
            "nodeId": "1:5", "nodeName": "Frame", "nodeType": "FRAME",
            "kind": "zero_size", "width": 0, "height": 10, "description": "ignored",
        })
        assert issue.kind == AnalyzeIssueKind.ZERO_SIZE
        assert issue.node_id == "1:5"

    def test_every_kind_has_a_handler(self):
        assert set(analyze_fix._FIX_HANDLERS) == set(AnalyzeIssueKind)
