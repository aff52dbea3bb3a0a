"""Tests for tubelingo.yaml_ops."""

from pathlib import Path

import pytest
import yaml  # type: ignore[import-untyped]

from tubelingo.models import GrammarItem, PracticeSentence, Project, ProjectStatus, VocabularyItem
from tubelingo.yaml_ops import projects_to_yaml, safe_filename, save_yaml


def _project() -> Project:
    return Project(
        id=3,
        title="日本語レッスン",
        source_url="https://www.youtube.com/watch?v=aaaaaaaaaaa",
        script="今日は天気がいいです。",
        vocabulary=[VocabularyItem("天気", "weather", "beginner")],
        grammar=[GrammarItem("〜がいい", "天気がいい", "is good")],
        practice_sentences=[PracticeSentence("天気がいいですね。", "Nice weather, isn't it?")],
        detected_language="Japanese",
        status=ProjectStatus.COMPLETED,
    )


class TestProjectsToYaml:
    """Tests for YAML serialization."""

    def test_serializes_lessons(self) -> None:
        data = yaml.safe_load(projects_to_yaml([_project()]))
        lesson = data["lessons"][0]
        assert lesson["id"] == 3
        assert lesson["detectedLanguage"] == "Japanese"
        assert lesson["vocabulary"] == [{"word": "天気", "definition": "weather", "difficulty": "beginner"}]
        assert lesson["practiceSentences"][0]["translation"] == "Nice weather, isn't it?"
        assert lesson["script"] == "今日は天気がいいです。"

    def test_keeps_unicode_readable(self) -> None:
        assert "日本語レッスン" in projects_to_yaml([_project()])

    def test_excludes_script(self) -> None:
        data = yaml.safe_load(projects_to_yaml([_project()], include_script=False))
        assert "script" not in data["lessons"][0]

    def test_empty(self) -> None:
        assert yaml.safe_load(projects_to_yaml([])) == {"lessons": []}


class TestSaveYaml:
    """Tests for writing YAML files."""

    def test_writes_utf8_file(self, tmp_path: Path) -> None:
        path = tmp_path / "out.yaml"
        save_yaml(path, [_project()])
        assert yaml.safe_load(path.read_text(encoding="utf-8"))["lessons"][0]["title"] == "日本語レッスン"


class TestSafeFilename:
    """Tests for export file naming."""

    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("Spanish: Cats?", "Spanish_Cats.yaml"),
            ("a/b\\c", "a_b_c.yaml"),
            ("  My   Lesson. ", "My_Lesson.yaml"),
            ("日本語レッスン", "日本語レッスン.yaml"),
            ("???", "lesson.yaml"),
            ("", "lesson.yaml"),
        ],
    )
    def test_sanitizes(self, title: str, expected: str) -> None:
        assert safe_filename(title) == expected

    def test_truncates(self) -> None:
        assert safe_filename("x" * 200, suffix=".yml", max_length=10) == "xxxxxxxxxx.yml"
