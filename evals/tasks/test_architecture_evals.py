"""
Architecture Evals -- the engine core stays pure.

engine/ may import only the standard library, pydantic, and the shared
errors/validators modules. No database, HTTP, clock-driven or service code.
"""

import ast
from pathlib import Path

import safetygate.engine as engine_pkg

ENGINE_DIR = Path(engine_pkg.__file__).parent

FORBIDDEN_MODULES = ("sqlite3", "fastapi", "httpx", "uvicorn", "typer", "rich", "random", "time")
FORBIDDEN_RELATIVE = ("store", "api", "service", "review", "cli", "config")


def _imports(path: Path) -> list[tuple[str, int]]:
    """(module, relative level) for every import in a file."""
    tree = ast.parse(path.read_text(encoding="utf-8"))
    found = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            found.extend((alias.name, 0) for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            found.append((node.module or "", node.level))
    return found


class TestEnginePurity:
    """Eval: Does the engine stay free of I/O and outer layers?"""

    def test_engine_files_exist(self):
        assert len(list(ENGINE_DIR.glob("*.py"))) >= 10

    def test_no_io_or_framework_imports(self):
        for path in ENGINE_DIR.glob("*.py"):
            for module, _ in _imports(path):
                root = module.split(".")[0]
                assert root not in FORBIDDEN_MODULES, f"{path.name} imports {module}"

    def test_no_outer_layer_imports(self):
        for path in ENGINE_DIR.glob("*.py"):
            for module, level in _imports(path):
                parts = module.split(".")
                if module.startswith("safetygate."):
                    assert parts[1] not in FORBIDDEN_RELATIVE, f"{path.name} imports {module}"
                elif level >= 2:
                    assert parts[0] not in FORBIDDEN_RELATIVE, f"{path.name} imports {module}"
