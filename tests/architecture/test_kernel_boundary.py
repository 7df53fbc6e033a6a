"""
Kernel Boundary & Invariants Contract.

Tests that enforce the kernel's architectural boundaries:

1. marketplace_kernel/** may NOT import marketplace_config. The kernel
   never depends upward; configuration reaches it as a MarketplacePolicy.

2. marketplace_kernel/domain/** is pure: no ORM, no DB driver, and no
   import of the kernel's db / models / services / selectors layers.

3. The marketplace invariants declaration is complete and non-empty.

These tests read source code via AST; they cannot break anything.
"""

import ast
import glob
from pathlib import Path

from marketplace_kernel.invariants import (
    ALL_MARKETPLACE_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    MarketplaceInvariant,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under root, relative to cwd."""
    return sorted(glob.glob(f"{root}/**/*.py", recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
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


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(root):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    """marketplace_kernel/** must not import marketplace_config."""

    def test_kernel_sources_are_found(self):
        assert _python_files("marketplace_kernel"), "run from the repository root"

    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations("marketplace_kernel", FORBIDDEN_KERNEL_IMPORTS)

        assert not violations, (
            "Kernel boundary violation: marketplace_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Kernel domain purity
# ---------------------------------------------------------------------------

class TestKernelDomainPurity:
    """marketplace_kernel/domain/** must not import ORM, DB or outer kernel layers."""

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "marketplace_kernel.db",
        "marketplace_kernel.models",
        "marketplace_kernel.services",
        "marketplace_kernel.selectors",
    )

    def test_domain_no_orm_imports(self):
        violations = _violations("marketplace_kernel/domain", self.FORBIDDEN_MODULES)

        assert not violations, (
            "Domain purity violation: marketplace_kernel/domain/** must not "
            "import ORM/DB packages or outer layers:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Invariants declaration
# ---------------------------------------------------------------------------

class TestInvariantsDeclaration:

    def test_invariants_are_declared(self):
        assert ALL_MARKETPLACE_INVARIANTS
        assert ALL_MARKETPLACE_INVARIANTS == frozenset(MarketplaceInvariant)

    def test_every_invariant_documents_its_enforcement(self):
        source = Path("marketplace_kernel/invariants.py").read_text()
        tree = ast.parse(source)
        cls = next(
            node for node in tree.body
            if isinstance(node, ast.ClassDef) and node.name == "MarketplaceInvariant"
        )

        documented = set()
        body = cls.body
        for current, following in zip(body, body[1:]):
            if (
                isinstance(current, ast.Assign)
                and isinstance(following, ast.Expr)
                and isinstance(following.value, ast.Constant)
                and "Enforced by" in following.value.value
            ):
                documented.add(current.targets[0].id)

        assert documented == {member.name for member in MarketplaceInvariant}

    def test_config_package_is_the_only_forbidden_import(self):
        assert FORBIDDEN_KERNEL_IMPORTS == ("marketplace_config",)
