"""Fails when a test in an ``*__it.py`` module is not marked as an integration test."""

import ast
import sys
from pathlib import Path

SOURCE_ROOT = Path("src/histcat")


def _is_integration_mark(node):
    func = node.func if isinstance(node, ast.Call) else node
    if not isinstance(func, ast.Attribute) or func.attr != "integration":
        return False
    owner = func.value
    if isinstance(owner, ast.Name):
        return owner.id == "mark"
    return isinstance(owner, ast.Attribute) and owner.attr == "mark"


def _marks_whole_module(tree):
    return any(
        isinstance(node, ast.Assign)
        and any(isinstance(target, ast.Name) and target.id == "pytestmark" for target in node.targets)
        for node in tree.body
    )


def _unmarked_tests(path):
    tree = ast.parse(path.read_text(), filename=str(path))
    if _marks_whole_module(tree):
        return []
    return [
        f"{path}:{node.lineno} {node.name}"
        for node in tree.body
        if isinstance(node, ast.FunctionDef)
        and node.name.startswith("test")
        and not any(_is_integration_mark(decorator) for decorator in node.decorator_list)
    ]


def main():
    unmarked = [line for path in sorted(SOURCE_ROOT.rglob("*__it.py")) for line in _unmarked_tests(path)]
    if unmarked:
        print("Missing @pytest.mark.integration or pytestmark:")
        for line in unmarked:
            print("  -", line)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
