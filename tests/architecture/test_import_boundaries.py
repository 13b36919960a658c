"""
Import-boundary enforcement.

1. Kernel independence -- recurrence_kernel/** may not import
                          recurrence_config or recurrence_batch.
2. Domain purity       -- recurrence_kernel/domain/** may not import the
                          ORM, models, selectors, services, or db layers.
3. Config direction    -- recurrence_config/** may not import recurrence_batch.
4. Batch domain purity -- recurrence_batch/domain/** may not import
                          SQLAlchemy or batch models/services.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(f"{ROOT / package}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"{Path(filepath).relative_to(ROOT)}:{lineno} imports {module}")
    return found


class TestKernelIndependence:

    def test_scanned_files_exist(self):
        assert _python_files("recurrence_kernel")

    def test_kernel_does_not_import_outer_packages(self):
        violations = _violations(
            "recurrence_kernel", ("recurrence_config", "recurrence_batch"),
        )
        assert violations == [], "\n".join(violations)


class TestDomainPurity:

    def test_kernel_domain_has_no_io_imports(self):
        violations = _violations(
            "recurrence_kernel/domain",
            (
                "sqlalchemy",
                "recurrence_kernel.db",
                "recurrence_kernel.models",
                "recurrence_kernel.selectors",
                "recurrence_kernel.services",
            ),
        )
        assert violations == [], "\n".join(violations)

    def test_batch_domain_has_no_io_imports(self):
        violations = _violations(
            "recurrence_batch/domain",
            (
                "sqlalchemy",
                "recurrence_batch.models",
                "recurrence_batch.services",
                "recurrence_kernel.db",
                "recurrence_kernel.services",
            ),
        )
        assert violations == [], "\n".join(violations)


class TestConfigDirection:

    def test_config_does_not_import_batch(self):
        violations = _violations("recurrence_config", ("recurrence_batch",))
        assert violations == [], "\n".join(violations)
