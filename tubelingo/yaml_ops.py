"""YAML export of lesson projects."""

import re
from pathlib import Path

import yaml  # type: ignore[import-untyped]

from tubelingo.models import Project

_UNSAFE_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]+')


def projects_to_yaml(projects: list[Project], include_script: bool = True) -> str:
    """Serialize projects to YAML string."""
    data = {"lessons": [p.to_dict(include_script=include_script) for p in projects]}
    result: str = yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
    return result


def save_yaml(path: Path | str, projects: list[Project], include_script: bool = True) -> None:
    """Save projects to YAML file."""
    content = projects_to_yaml(projects, include_script)
    Path(path).write_text(content, encoding="utf-8")


def safe_filename(title: str, suffix: str = ".yaml", max_length: int = 80) -> str:
    """Turn a lesson title into a filesystem-safe file name."""
    name = _UNSAFE_CHARS_RE.sub("_", title)
    name = re.sub(r"[\s_]+", "_", name).strip("._")[:max_length].rstrip("_")
    return f"{name or 'lesson'}{suffix}"
