"""Tests that packaging metadata declares what the code imports."""

import re
from pathlib import Path

import toml

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def _declared() -> set[str]:
    deps = toml.load(PYPROJECT)["project"]["dependencies"]
    return {re.split(r"[\[<>=!~ ]", d, maxsplit=1)[0].lower() for d in deps}


class TestDependencies:
    def test_directly_imported_web_stack_is_declared(self):
        assert {"fastapi", "starlette", "uvicorn", "httpx"} <= _declared()

    def test_storage_stack_is_declared(self):
        assert {"sqlalchemy", "asyncpg"} <= _declared()
