"""YAML and JSON document loading."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from tracecov.errors import InputNotFound, MalformedInput
from tracecov.infra.cache import FileCache


def load_yaml(path: str | Path, files: Optional[FileCache] = None) -> Any:
    """Parse a YAML file, reading it through ``files`` when given."""
    file_path = Path(path)
    content = _read(file_path, files)
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise MalformedInput(f"Invalid YAML in {file_path}: {exc}", path=str(file_path)) from exc


def load_json(path: str | Path, files: Optional[FileCache] = None) -> Any:
    file_path = Path(path)
    content = _read(file_path, files)
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise MalformedInput(f"Invalid JSON in {file_path}: {exc}", path=str(file_path)) from exc


def load_document(path: str | Path, files: Optional[FileCache] = None) -> Any:
    """Load ``.json`` as JSON and anything else as YAML."""
    if Path(path).suffix.lower() == ".json":
        return load_json(path, files)
    return load_yaml(path, files)


def _read(file_path: Path, files: Optional[FileCache]) -> str:
    if files is not None:
        return files.read(file_path)
    if not file_path.exists():
        raise InputNotFound(f"File not found: {file_path}", path=str(file_path))
    try:
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedInput(f"{file_path} is not valid UTF-8: {exc}", path=str(file_path)) from exc
