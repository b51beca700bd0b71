"""Structural summary of JavaScript/TypeScript sources from tree-sitter trees."""

from typing import Callable, Dict, List, Optional, Tuple
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

FUNCTION_NODE_TYPES = (
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
)

LITERAL_NODE_TYPES = ("number", "true", "false", "null", "undefined")
IDENTIFIER_NODE_TYPES = (
    "identifier",
    "property_identifier",
    "shorthand_property_identifier",
    "private_property_identifier",
    "this",
)

MAX_TOKEN_DEPTH = 8


def node_text(node) -> str:
    """Decoded source text of a node."""
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def node_line(node) -> int:
    """1-based start line of a node."""
    return node.start_point[0] + 1


def node_end_line(node) -> int:
    """1-based end line of a node."""
    return node.end_point[0] + 1


def string_value(node) -> Optional[str]:
    """Value of a string literal node, or None when it is not a plain literal."""
    if node is None:
        return None
    if node.type == "string":
        return node_text(node)[1:-1]
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.named_children):
            return None
        return node_text(node)[1:-1]
    return None


class JsAnalysisVisitor:
    """Walks a tree-sitter tree and fills a FileAnalysis.

    Every node kind the summary cares about has exactly one handler in the
    dispatch table; all other kinds are only descended into.
    """

    def __init__(self, file_path: str, settings):
        """Initialize the visitor.

        Args:
            file_path: Root-relative path of the file
            settings: AnalysisSettings with request, network and sensitive names
        """
        self.result = FileAnalysis(file_path=file_path)
        self.request_identifiers = set(settings.request_identifiers)
        self.network_functions = set(settings.network_functions)
        self.sensitive_functions = set(settings.sensitive_functions)
        self._handlers = self._dispatch_table()

    def _dispatch_table(self) -> Dict[str, Callable]:
        entries: List[Tuple[str, Callable]] = [
            ("import_statement", self._visit_import_statement),
            ("call_expression", self._visit_call_expression),
            ("new_expression", self._visit_new_expression),
            ("export_statement", self._visit_export_statement),
            ("assignment_expression", self._visit_assignment_expression),
            ("variable_declarator", self._visit_variable_declarator),
            ("member_expression", self._visit_member_expression),
            ("subscript_expression", self._visit_subscript_expression),
        ]
        entries.extend((kind, self._visit_function) for kind in FUNCTION_NODE_TYPES)

        table: Dict[str, Callable] = {}
        for kind, handler in entries:
            if kind in table:
                raise ValueError(f"Duplicate handler for node type: {kind}")
            table[kind] = handler
        return table

    def analyze(self, root) -> FileAnalysis:
        """Visit every node in document order.

        Args:
            root: tree-sitter root node

        Returns:
            The populated FileAnalysis
        """
        stack = [root]
        while stack:
            node = stack.pop()
            handler = self._handlers.get(node.type) if node.is_named else None
            if handler is not None:
                handler(node)
            stack.extend(reversed(node.children))

        logger.debug(
            f"{self.result.file_path}: {len(self.result.functions)} functions, "
            f"{len(self.result.imports)} imports, {len(self.result.exports)} exports"
        )
        return self.result

    # Imports

    def _visit_import_statement(self, node) -> None:
        source = node.child_by_field_name("source")
        if source is None:
            return

        specifiers = []
        for child in node.named_children:
            if child.type == "import_clause":
                specifiers.extend(self._identifiers_in(child))

        self.result.imports.append(ImportInfo(
            source=string_value(source) or node_text(source),
            line=node_line(node),
            kind="static",
            specifiers=specifiers
        ))

    def _identifiers_in(self, node) -> List[str]:
        names = []
        stack = [node]
        while stack:
            current = stack.pop()
            if current.type == "identifier":
                names.append(node_text(current))
            stack.extend(reversed(current.named_children))
        return names

    # Calls

    def _visit_call_expression(self, node) -> None:
        callee = node.child_by_field_name("function")
        if callee is None:
            return
        arguments = self._argument_nodes(node)
        line = node_line(node)

        if callee.type == "import":
            self._record_module_load(arguments, line, "dynamic", "dynamic")
        elif callee.type == "identifier" and node_text(callee) == "require":
            self._record_module_load(arguments, line, "require", "indirect_require")

        name, root = self._callee_name(callee)
        self._record_call(name, root, arguments, line)

    def _visit_new_expression(self, node) -> None:
        constructor = node.child_by_field_name("constructor")
        if constructor is None:
            return
        name, root = self._callee_name(constructor)
        self._record_call(name, root, self._argument_nodes(node), node_line(node))

    def _argument_nodes(self, node) -> list:
        arguments = node.child_by_field_name("arguments")
        if arguments is None or arguments.type != "arguments":
            return []
        return list(arguments.named_children)

    def _record_module_load(self, arguments: list, line: int, literal_kind: str, expression_kind: str) -> None:
        if not arguments:
            return
        value = string_value(arguments[0])
        if value is not None:
            self.result.imports.append(ImportInfo(source=value, line=line, kind=literal_kind))
        else:
            self.result.imports.append(ImportInfo(
                source=node_text(arguments[0]), line=line, kind=expression_kind
            ))

    def _record_call(self, name: str, root: Optional[str], arguments: list, line: int) -> None:
        tokens: List[str] = []
        for argument in arguments:
            self._collect_tokens(argument, tokens, 0)

        self.result.calls.append(CallSite(name=name, line=line, root=root, arg_tokens=tokens))

        flow = self.result.data_flow
        if name in self.network_functions or root in self.network_functions:
            flow.external_calls.append(DataFlowSite(name=name, line=line))
        if name in self.sensitive_functions or root in self.sensitive_functions:
            flow.sensitive_operations.append(DataFlowSite(name=name, line=line))

    def _callee_name(self, callee) -> Tuple[str, Optional[str]]:
        """Resolve a callee to (name, root object name)."""
        if callee.type == "identifier":
            name = node_text(callee)
            return name, name

        if callee.type == "member_expression":
            prop = callee.child_by_field_name("property")
            return node_text(prop), self._root_name(callee)

        return "anonymous", None

    def _root_name(self, node) -> Optional[str]:
        current = node
        while current is not None:
            if current.type in ("identifier", "this"):
                return node_text(current)
            if current.type in ("member_expression", "subscript_expression"):
                current = current.child_by_field_name("object")
            elif current.type == "call_expression":
                current = current.child_by_field_name("function")
            elif current.type == "parenthesized_expression" and current.named_children:
                current = current.named_children[0]
            else:
                return None
        return None

    def _collect_tokens(self, node, tokens: List[str], depth: int) -> None:
        if depth > MAX_TOKEN_DEPTH or node.type in FUNCTION_NODE_TYPES:
            return

        if node.type in IDENTIFIER_NODE_TYPES or node.type in LITERAL_NODE_TYPES:
            tokens.append(node_text(node))
            return
        if node.type == "string":
            tokens.append(string_value(node))
            return
        if node.type == "string_fragment":
            tokens.append(node_text(node))
            return

        for child in node.named_children:
            self._collect_tokens(child, tokens, depth + 1)

    # User input

    def _visit_member_expression(self, node) -> None:
        obj = node.child_by_field_name("object")
        prop = node.child_by_field_name("property")
        if obj is None or prop is None or obj.type != "identifier":
            return
        root = node_text(obj)
        if root in self.request_identifiers:
            self.result.data_flow.user_input_sources.append(
                DataFlowSite(name=f"{root}.{node_text(prop)}", line=node_line(node))
            )

    def _visit_subscript_expression(self, node) -> None:
        obj = node.child_by_field_name("object")
        index = node.child_by_field_name("index")
        if obj is None or obj.type != "identifier":
            return
        root = node_text(obj)
        if root not in self.request_identifiers:
            return
        key = string_value(index)
        name = f"{root}.{key}" if key is not None else f"{root}[{node_text(index)}]"
        self.result.data_flow.user_input_sources.append(
            DataFlowSite(name=name, line=node_line(node))
        )

    # Definitions

    def _visit_function(self, node) -> None:
        name_node = node.child_by_field_name("name")
        name = node_text(name_node) if name_node is not None else self._inferred_name(node)
        body = node.child_by_field_name("body")

        self.result.functions.append(FunctionInfo(
            name=name,
            start_line=node_line(node),
            end_line=node_end_line(body if body is not None else node),
            parameters=self._parameter_names(node)
        ))

    def _parameter_names(self, node) -> List[str]:
        single = node.child_by_field_name("parameter")
        if single is not None:
            return [node_text(single)]

        params = node.child_by_field_name("parameters")
        if params is None:
            return []
        names = []
        for param in params.named_children:
            if param.type == "identifier":
                names.append(node_text(param))
            else:
                pattern = param.child_by_field_name("pattern") or param.child_by_field_name("left")
                names.append(node_text(pattern if pattern is not None else param))
        return names

    def _inferred_name(self, node) -> str:
        """Name an anonymous function after the binding or call that holds it."""
        parent = node.parent
        if parent is None:
            return "anonymous"

        if parent.type == "variable_declarator":
            return node_text(parent.child_by_field_name("name")) or "anonymous"
        if parent.type == "assignment_expression":
            left = parent.child_by_field_name("left")
            if left is not None and left.type == "member_expression":
                return node_text(left.child_by_field_name("property"))
            return node_text(left) or "anonymous"
        if parent.type == "pair":
            key = parent.child_by_field_name("key")
            return string_value(key) or node_text(key) or "anonymous"
        if parent.type == "arguments" and parent.parent is not None:
            call = parent.parent
            if call.type == "call_expression":
                callee = call.child_by_field_name("function")
                if callee is not None:
                    return self._callee_name(callee)[0]

        return "anonymous"

    def _visit_variable_declarator(self, node) -> None:
        name = node.child_by_field_name("name")
        if name is None:
            return

        kind = "var"
        declaration = node.parent
        if declaration is not None and declaration.type == "lexical_declaration" and declaration.children:
            kind = node_text(declaration.children[0])

        self.result.variables.append(VariableInfo(
            name=node_text(name), line=node_line(node), kind=kind
        ))

    # Exports

    def _visit_export_statement(self, node) -> None:
        line = node_line(node)
        is_default = any(child.type == "default" for child in node.children)
        kind = "default" if is_default else "named"
        exports = self.result.exports

        declaration = node.child_by_field_name("declaration")
        value = node.child_by_field_name("value")

        if declaration is not None:
            if declaration.type in ("lexical_declaration", "variable_declaration"):
                for declarator in declaration.named_children:
                    if declarator.type == "variable_declarator":
                        exports.append(ExportInfo(
                            name=node_text(declarator.child_by_field_name("name")),
                            line=line,
                            kind=kind
                        ))
            else:
                name_node = declaration.child_by_field_name("name")
                name = node_text(name_node) if name_node is not None else "default"
                exports.append(ExportInfo(name=name, line=line, kind=kind))
            return

        if value is not None:
            if value.type == "identifier":
                name = node_text(value)
            else:
                name_node = value.child_by_field_name("name")
                name = node_text(name_node) if name_node is not None else "default"
            exports.append(ExportInfo(name=name, line=line, kind="default"))
            return

        clause_found = False
        for child in node.named_children:
            if child.type != "export_clause":
                continue
            clause_found = True
            for spec in child.named_children:
                if spec.type == "export_specifier":
                    exports.append(ExportInfo(
                        name=node_text(spec.child_by_field_name("name")),
                        line=line,
                        kind=kind
                    ))

        if not clause_found and any(child.type == "*" for child in node.children):
            exports.append(ExportInfo(name="*", line=line, kind="named"))

    def _visit_assignment_expression(self, node) -> None:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None or left.type != "member_expression":
            return

        target = node_text(left)
        line = node_line(node)

        if target == "module.exports":
            for name in self._commonjs_names(right):
                self.result.exports.append(ExportInfo(name=name, line=line, kind="commonjs"))
        elif target.startswith("exports.") or target.startswith("module.exports."):
            name = node_text(left.child_by_field_name("property"))
            self.result.exports.append(ExportInfo(name=name, line=line, kind="commonjs"))

    def _commonjs_names(self, value) -> List[str]:
        if value.type == "identifier":
            return [node_text(value)]

        if value.type == "object":
            names = []
            for entry in value.named_children:
                if entry.type == "shorthand_property_identifier":
                    names.append(node_text(entry))
                elif entry.type in ("pair", "method_definition"):
                    key = entry.child_by_field_name("key") or entry.child_by_field_name("name")
                    names.append(string_value(key) or node_text(key))
            return names or ["default"]

        name_node = value.child_by_field_name("name")
        return [node_text(name_node)] if name_node is not None else ["default"]
