"""
Layer boundary tests.

1. silver_kernel/** may NOT import silver_config.  Configuration reaches the
   kernel only through silver_config.bridges.
2. silver_kernel/domain/** is pure: no SQLAlchemy, no services, no selectors.
3. Selectors never import services; services never import selectors except
   the BillingService facade, which wires both.
4. Models import from db/ only.

These tests read source code via AST -- they cannot break anything.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...], allowed_files: tuple[str, ...] = ()) -> list[str]:
    found = []
    for filepath in _python_files(package):
        if filepath.name in allowed_files:
            continue
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_config(self):
        violations = _violations("silver_kernel", ("silver_config",))
        assert not violations, (
            "silver_kernel/** must not import silver_config:\n" + "\n".join(violations)
        )


class TestDomainPurity:

    FORBIDDEN = (
        "sqlalchemy",
        "silver_kernel.db.engine",
        "silver_kernel.services",
        "silver_kernel.selectors",
    )

    def test_domain_has_no_io_imports(self):
        violations = _violations("silver_kernel/domain", self.FORBIDDEN)
        assert not violations, "domain must stay pure:\n" + "\n".join(violations)


class TestReadWriteSeparation:

    def test_selectors_do_not_import_services(self):
        violations = _violations("silver_kernel/selectors", ("silver_kernel.services",))
        assert not violations, "\n".join(violations)

    def test_only_facade_imports_selectors(self):
        violations = _violations(
            "silver_kernel/services",
            ("silver_kernel.selectors",),
            allowed_files=("billing_service.py", "__init__.py"),
        )
        assert not violations, "\n".join(violations)


class TestModelImports:

    def test_models_import_db_only(self):
        violations = _violations(
            "silver_kernel/models",
            ("silver_kernel.services", "silver_kernel.selectors", "silver_kernel.domain"),
        )
        assert not violations, "\n".join(violations)
