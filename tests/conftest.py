from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Sequence

import pytest

from csv_merge import ColumnConfig


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("csv_merge")


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write a CSV file from a header list and row lists into tmp_path/inputs."""

    def _write(name: str, headers: Sequence[str], rows: Sequence[Sequence[str]] = (), folder: str = "inputs") -> Path:
        target = tmp_path / folder
        target.mkdir(parents=True, exist_ok=True)
        lines = [",".join(headers)] + [",".join(r) for r in rows]
        path = target / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def repo_config() -> ColumnConfig:
    return ColumnConfig(columns=["Org_Name", "Repo_Name"])
