"""Structural summary of Python sources from the stdlib ast."""

from typing import List, Optional, Tuple
import ast
import logging

from ..models.analysis import (
    CallSite,
    DataFlowSite,
    ExportInfo,
    FileAnalysis,
    FunctionInfo,
    ImportInfo,
    VariableInfo,
)

logger = logging.getLogger(__name__)

DYNAMIC_IMPORT_CALLS = ("__import__", "import_module")


class PyAnalysisVisitor(ast.NodeVisitor):
    """Fills a FileAnalysis from a parsed module."""

    def __init__(self, file_path: str, settings):
        self.result = FileAnalysis(file_path=file_path)
        self.request_identifiers = set(settings.request_identifiers)
        self.network_functions = set(settings.network_functions)
        self.sensitive_functions = set(settings.sensitive_functions)
        self._has_all = False

    def analyze(self, module: ast.Module) -> FileAnalysis:
        """Visit the module and derive its exports.

        Exports are the names listed in ``__all__`` when the module defines
        it, otherwise every public top-level function and class.
        """
        self.visit(module)

        if not self._has_all:
            for statement in module.body:
                if isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                    if not statement.name.startswith("_"):
                        self.result.exports.append(ExportInfo(
                            name=statement.name, line=statement.lineno, kind="named"
                        ))

        return self.result

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self.result.imports.append(ImportInfo(
                source=alias.name,
                line=node.lineno,
                kind="static",
                specifiers=[alias.asname or alias.name]
            ))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        source = "." * node.level + (node.module or "")
        self.result.imports.append(ImportInfo(
            source=source,
            line=node.lineno,
            kind="static",
            specifiers=[alias.asname or alias.name for alias in node.names]
        ))

    def _visit_function(self, node) -> None:
        args = node.args
        params = [a.arg for a in args.posonlyargs + args.args + args.kwonlyargs]
        if args.vararg is not None:
            params.append(args.vararg.arg)
        if args.kwarg is not None:
            params.append(args.kwarg.arg)

        self.result.functions.append(FunctionInfo(
            name=getattr(node, "name", "lambda"),
            start_line=node.lineno,
            end_line=getattr(node, "end_lineno", None) or node.lineno,
            parameters=params
        ))
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_function(node)

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            if isinstance(target, ast.Name):
                self.result.variables.append(VariableInfo(name=target.id, line=node.lineno))
                if target.id == "__all__":
                    self._record_all(node.value, node.lineno)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if isinstance(node.target, ast.Name):
            self.result.variables.append(VariableInfo(name=node.target.id, line=node.lineno))
        self.generic_visit(node)

    def _record_all(self, value, line: int) -> None:
        if not isinstance(value, (ast.List, ast.Tuple)):
            return
        self._has_all = True
        for element in value.elts:
            if isinstance(element, ast.Constant) and isinstance(element.value, str):
                self.result.exports.append(ExportInfo(name=element.value, line=line, kind="all"))

    def visit_Call(self, node: ast.Call) -> None:
        name, root = self._callee_name(node.func)
        line = node.lineno

        if name in DYNAMIC_IMPORT_CALLS and node.args:
            first = node.args[0]
            if isinstance(first, ast.Constant) and isinstance(first.value, str):
                self.result.imports.append(ImportInfo(source=first.value, line=line, kind="dynamic"))
            else:
                self.result.imports.append(ImportInfo(
                    source=ast.unparse(first), line=line, kind="dynamic"
                ))

        tokens: List[str] = []
        for argument in list(node.args) + [k.value for k in node.keywords]:
            tokens.extend(self._tokens(argument))
        self.result.calls.append(CallSite(name=name, line=line, root=root, arg_tokens=tokens))

        flow = self.result.data_flow
        if name in self.network_functions or root in self.network_functions:
            flow.external_calls.append(DataFlowSite(name=name, line=line))
        if name in self.sensitive_functions or root in self.sensitive_functions:
            flow.sensitive_operations.append(DataFlowSite(name=name, line=line))

        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if isinstance(node.value, ast.Name) and node.value.id in self.request_identifiers:
            self.result.data_flow.user_input_sources.append(
                DataFlowSite(name=f"{node.value.id}.{node.attr}", line=node.lineno)
            )
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        value = node.value
        if isinstance(value, ast.Name) and value.id in self.request_identifiers:
            key = node.slice
            if isinstance(key, ast.Constant) and isinstance(key.value, str):
                name = f"{value.id}.{key.value}"
            else:
                name = f"{value.id}[{ast.unparse(key)}]"
            self.result.data_flow.user_input_sources.append(DataFlowSite(name=name, line=node.lineno))
        self.generic_visit(node)

    @staticmethod
    def _callee_name(func) -> Tuple[str, Optional[str]]:
        if isinstance(func, ast.Name):
            return func.id, func.id
        if isinstance(func, ast.Attribute):
            current = func.value
            while isinstance(current, (ast.Attribute, ast.Call, ast.Subscript)):
                current = current.func if isinstance(current, ast.Call) else current.value
            root = current.id if isinstance(current, ast.Name) else None
            return func.attr, root
        return "anonymous", None

    @staticmethod
    def _tokens(node) -> List[str]:
        tokens = []
        for child in ast.walk(node):
            if isinstance(child, ast.Name):
                tokens.append(child.id)
            elif isinstance(child, ast.Attribute):
                tokens.append(child.attr)
            elif isinstance(child, ast.Constant) and isinstance(child.value, str):
                tokens.append(child.value)
        return tokens
