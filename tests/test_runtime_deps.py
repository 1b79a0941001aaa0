# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Check that third-party imports in smtp2wwpm/ are declared dependencies.

The package sources are parsed with ``ast`` and every top-level import
that is neither stdlib nor internal must come from a distribution in the
runtime closure of pyproject.toml's ``[project] dependencies``.
"""

import ast
import re
import sys
import tomllib
from importlib.metadata import packages_distributions, requires
from pathlib import Path


PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE_DIR = PROJECT_ROOT / "smtp2wwpm"


def _normalize(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def _requirement_name(requirement: str) -> str:
    return _normalize(re.split(r"[<>=!~;\[\s]", requirement)[0].strip())


def _top_level_imports(source_dir: Path) -> set[str]:
    names: set[str] = set()
    for py_file in source_dir.rglob("*.py"):
        tree = ast.parse(py_file.read_text(), filename=str(py_file))
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                names.update(a.name.split(".")[0] for a in node.names)
            elif isinstance(node, ast.ImportFrom):
                if node.module and node.level == 0:
                    names.add(node.module.split(".")[0])
    return names


def _runtime_closure() -> set[str]:
    """Distribution names reachable from the declared dependencies."""
    with open(PROJECT_ROOT / "pyproject.toml", "rb") as f:
        project = tomllib.load(f)["project"]

    queue = [_requirement_name(dep) for dep in project["dependencies"]]
    resolved: set[str] = set()
    while queue:
        dist = queue.pop()
        if dist in resolved:
            continue
        resolved.add(dist)
        for req in requires(dist) or []:
            if "extra ==" in req:
                continue
            queue.append(_requirement_name(req))
    return resolved


def test_package_imports_covered_by_runtime_deps() -> None:
    """Every third-party import resolves to a runtime dependency."""
    stdlib = sys.stdlib_module_names
    third_party = {
        name
        for name in _top_level_imports(PACKAGE_DIR)
        if name not in stdlib and name != "smtp2wwpm"
    }

    import_to_dist = packages_distributions()
    runtime = _runtime_closure()

    missing = []
    for name in sorted(third_party):
        dists = import_to_dist.get(name, [])
        if not dists:
            missing.append(f"{name} (no distribution found)")
        elif not any(_normalize(d) in runtime for d in dists):
            missing.append(f"{name} (from {', '.join(dists)})")

    assert not missing, (
        "smtp2wwpm/ imports packages missing from [project] dependencies:\n"
        + "\n".join(f"  - {m}" for m in missing)
    )


def test_declared_deps_are_used() -> None:
    """No declared runtime dependency goes unimported."""
    with open(PROJECT_ROOT / "pyproject.toml", "rb") as f:
        declared = {
            _requirement_name(dep)
            for dep in tomllib.load(f)["project"]["dependencies"]
        }

    import_to_dist = packages_distributions()
    used = {
        _normalize(dist)
        for name in _top_level_imports(PACKAGE_DIR)
        for dist in import_to_dist.get(name, [])
    }
    assert declared <= used, f"Unused dependencies: {sorted(declared - used)}"
