"""Validates generated client files for syntax and structural correctness."""

import ast

from ..parser.base import GeneratedBundle


def validate_python(files: dict[str, str]) -> dict[str, str]:
    """Check Python files for syntax errors.

    Returns dict of {filename: error_message} for files with errors.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith((".py", ".pyi")):
            continue
        if not content.strip():
            continue
        try:
            ast.parse(content, filename=filename)
        except SyntaxError as e:
            errors[filename] = f"SyntaxError: {e.msg} (line {e.lineno})"
    return errors


def validate_exports(files: dict[str, str]) -> dict[str, str]:
    """Check that every name listed in a module's ``__all__`` is defined or imported there.

    Star re-exports from the entry file fail at import time otherwise.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".py") or not content.strip():
            continue
        try:
            tree = ast.parse(content, filename=filename)
        except SyntaxError:
            continue
        exported, defined = _module_names(tree)
        missing = [name for name in exported if name not in defined]
        if missing:
            errors[filename] = f"NameError: __all__ lists undefined names {', '.join(missing)}"
    return errors


def validate_bundle(bundle: GeneratedBundle) -> dict[str, str]:
    """Run all validations on a generated bundle.

    Returns dict of {filename: error_message} for all files with errors.
    Export checks only run when every file parses.
    """
    files = bundle.as_dict()
    errors = validate_python(files)
    if not errors:
        errors.update(validate_exports(files))
    return errors


def _module_names(tree: ast.Module) -> tuple[list[str], set[str]]:
    exported: list[str] = []
    defined: set[str] = set()
    for node in tree.body:
        if isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
            defined.add(node.name)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            defined.update((alias.asname or alias.name).split(".")[0] for alias in node.names)
        elif isinstance(node, (ast.Assign, ast.AnnAssign)):
            targets = node.targets if isinstance(node, ast.Assign) else [node.target]
            for target in targets:
                if isinstance(target, ast.Name):
                    defined.add(target.id)
                    if target.id == "__all__" and isinstance(node.value, (ast.List, ast.Tuple)):
                        exported = [e.value for e in node.value.elts if isinstance(e, ast.Constant)]
    return exported, defined
