"""
=============================================================================
PYTHON ENGINE
=============================================================================

A SemanticEngine for Python source built on the standard library ``ast``
module. No interpreter state is touched: files are parsed, never imported.

=============================================================================
HOW A QUERY IS ANSWERED
=============================================================================

    source (buffer or disk)
        │
        ▼
    ast.parse ──► _ScopeBuilder ──► _Module
                                      ├── scopes: module / class / function,
                                      │   each with its line range and the
                                      │   names bound in it
                                      └── lines: for definition text

    find_definition:   identifier under the cursor
                       → innermost enclosing scope outwards (class bodies
                         are skipped unless innermost, as Python does)
                       → latest binding at or before the cursor line
                       → ``from x import y`` followed one level into x

    list_completions:  identifier prefix before the cursor
                       → after ``self.`` / ``cls.`` / ``Class.``: members
                       → otherwise visible names + keywords + builtins

    parse_file:        compile() with warnings recorded
                       → SyntaxError as an error, SyntaxWarning as warnings

=============================================================================
THREAD SAFETY
=============================================================================

Parsed modules are cached in a small LRU keyed by (path, source). The
cache is the engine's only mutable state and sits behind a lock.
``warnings.catch_warnings`` mutates interpreter-global state, so every use
of it goes through one module-level lock as well.

=============================================================================
"""

import ast
import builtins
import keyword
import logging
import re
import threading
import warnings
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .base import (
    Buffer,
    Completion,
    Context,
    Definition,
    Diagnostic,
    EngineError,
    SemanticEngine,
    find_buffer,
    load_source,
)


logger = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
TRAILING_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*$")
RECEIVER_BEFORE_DOT = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*\.\s*$")

_WARNINGS_LOCK = threading.Lock()


@dataclass
class _Binding:
    """One place a name gets bound."""

    name: str
    kind: str
    line: int
    column: int
    # from-import bookkeeping, for following into the source module
    module: Optional[str] = None
    level: int = 0
    original: Optional[str] = None


@dataclass
class _Scope:
    kind: str                       # module, class or function
    start: int
    end: int
    parent: Optional["_Scope"] = None
    name: str = ""
    bindings: Dict[str, List[_Binding]] = field(default_factory=dict)
    # class scopes only: methods, class attributes and self.<attr> stores
    members: Dict[str, List[_Binding]] = field(default_factory=dict)

    def contains(self, line: int) -> bool:
        return self.start <= line <= self.end

    def bind(self, binding: _Binding) -> None:
        self.bindings.setdefault(binding.name, []).append(binding)
        if self.kind == "class":
            self.members.setdefault(binding.name, []).append(binding)


@dataclass
class _Module:
    path: str
    lines: List[str]
    scopes: List[_Scope]

    @property
    def root(self) -> _Scope:
        return self.scopes[0]

    def innermost(self, line: int) -> _Scope:
        """Deepest scope whose line range contains ``line``."""
        best = self.root
        for scope in self.scopes:
            if scope.contains(line) and (scope.end - scope.start) <= (best.end - best.start):
                best = scope
        return best

    def visible_scopes(self, line: int) -> List[_Scope]:
        """
        Scopes searched for a bare name at ``line``, innermost first.

        A class body is only visible from inside itself, not from the
        methods nested in it.
        """
        chain = []
        scope = self.innermost(line)
        first = True
        while scope is not None:
            if scope.kind != "class" or first:
                chain.append(scope)
            first = False
            scope = scope.parent
        return chain

    def enclosing_class(self, line: int) -> Optional[_Scope]:
        scope = self.innermost(line)
        while scope is not None:
            if scope.kind == "class":
                return scope
            scope = scope.parent
        return None

    def class_named(self, name: str, line: int) -> Optional[_Scope]:
        """The class scope a bare ``name`` refers to at ``line``."""
        binding = _resolve(self, name, line)
        if binding is None or binding.kind != "class":
            return None
        for scope in self.scopes:
            if scope.kind == "class" and scope.name == name and scope.start == binding.line:
                return scope
        return None

    def text_at(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1].strip()
        return ""


def _char_column(line_text: str, byte_offset: int) -> int:
    """ast offsets count UTF-8 bytes; convert to characters."""
    return len(line_text.encode("utf-8")[:byte_offset].decode("utf-8", errors="ignore"))


class _ScopeBuilder(ast.NodeVisitor):
    """Walks a module once, recording scopes and the names bound in them."""

    def __init__(self, lines: List[str]):
        self.lines = lines
        root = _Scope(kind="module", start=1, end=max(len(lines), 1))
        self.scopes: List[_Scope] = [root]
        self.current = root

    # ----------------------------------------------------------------- helpers

    def _column(self, lineno: int, col_offset: int, name: str) -> int:
        """Character column of ``name`` on ``lineno`` at or after the node."""
        if not 1 <= lineno <= len(self.lines):
            return col_offset
        text = self.lines[lineno - 1]
        start = _char_column(text, col_offset)
        match = re.compile(rf"\b{re.escape(name)}\b").search(text, start)
        return match.start() if match else start

    def _bind(self, name: str, kind: str, node: ast.AST, **extra) -> None:
        lineno = getattr(node, "lineno", 1)
        col = self._column(lineno, getattr(node, "col_offset", 0), name)
        self.current.bind(_Binding(name=name, kind=kind, line=lineno, column=col, **extra))

    def _push(self, kind: str, node: ast.AST, name: str = "") -> _Scope:
        scope = _Scope(
            kind=kind,
            start=node.lineno,
            end=getattr(node, "end_lineno", None) or node.lineno,
            parent=self.current,
            name=name,
        )
        self.scopes.append(scope)
        self.current = scope
        return scope

    def _pop(self, scope: _Scope) -> None:
        self.current = scope.parent

    def _bind_arguments(self, args: ast.arguments) -> None:
        every = list(getattr(args, "posonlyargs", [])) + list(args.args) + list(args.kwonlyargs)
        if args.vararg:
            every.append(args.vararg)
        if args.kwarg:
            every.append(args.kwarg)
        for arg in every:
            self._bind(arg.arg, "parameter", arg)

    # --------------------------------------------------------------- visitors

    def _visit_function(self, node) -> None:
        self._bind(node.name, "function", node)
        for decorator in node.decorator_list:
            self.visit(decorator)
        for default in list(node.args.defaults) + [d for d in node.args.kw_defaults if d]:
            self.visit(default)

        scope = self._push("function", node, node.name)
        self._bind_arguments(node.args)
        for stmt in node.body:
            self.visit(stmt)
        self._pop(scope)

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_Lambda(self, node: ast.Lambda) -> None:
        scope = self._push("function", node, "<lambda>")
        self._bind_arguments(node.args)
        self.visit(node.body)
        self._pop(scope)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._bind(node.name, "class", node)
        for expr in list(node.decorator_list) + list(node.bases) + [k.value for k in node.keywords]:
            self.visit(expr)

        scope = self._push("class", node, node.name)
        for stmt in node.body:
            self.visit(stmt)
        self._pop(scope)

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Store):
            self._bind(node.id, "variable", node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        # self.<attr> = ... inside a method becomes a member of the class
        if (isinstance(node.ctx, ast.Store)
                and isinstance(node.value, ast.Name)
                and node.value.id in ("self", "cls")):
            owner = self.current.parent if self.current.kind == "function" else None
            if owner is not None and owner.kind == "class":
                col = self._column(node.lineno, node.value.end_col_offset or node.col_offset, node.attr)
                owner.members.setdefault(node.attr, []).append(
                    _Binding(name=node.attr, kind="attribute", line=node.lineno, column=col)
                )
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            bound = alias.asname or alias.name.split(".")[0]
            self._bind(bound, "module", node, module=alias.name, original=None)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name == "*":
                continue
            self._bind(
                alias.asname or alias.name,
                "import",
                node,
                module=node.module,
                level=node.level,
                original=alias.name,
            )

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self._bind(node.name, "variable", node)
        self.generic_visit(node)


def _pick(bindings: List[_Binding], line: int) -> _Binding:
    """Latest binding at or before ``line``; the first one otherwise."""
    before = [b for b in bindings if b.line <= line]
    if before:
        return before[-1]
    return bindings[0]


def _resolve(module: _Module, name: str, line: int) -> Optional[_Binding]:
    for scope in module.visible_scopes(line):
        bindings = scope.bindings.get(name)
        if bindings:
            return _pick(bindings, line)
    return None


class PythonEngine(SemanticEngine):
    """
    Semantic engine for Python.

    Args:
        cache_size: Number of parsed modules kept in the LRU cache.
    """

    name = "python"

    def __init__(self, cache_size: int = 64):
        self.cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, int, Optional[int]], _Module]" = OrderedDict()
        self._lock = threading.Lock()

    def initialize(self, config) -> None:
        logger.info(f"Python engine ready (cache size {self.cache_size})")

    # =========================================================================
    # PARSING
    # =========================================================================

    def parse_file(self, file_path: str, buffers: List[Buffer]) -> List[Diagnostic]:
        source = load_source(file_path, buffers)
        diagnostics: List[Diagnostic] = []

        with _WARNINGS_LOCK, warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                compile(source, file_path, "exec", dont_inherit=True)
            except SyntaxError as e:
                diagnostics.append(Diagnostic(
                    file_path=file_path,
                    line=e.lineno or 1,
                    column=max((e.offset or 1) - 1, 0),
                    message=e.msg,
                    severity="error",
                ))
            except ValueError as e:
                # source contains NUL bytes
                diagnostics.append(Diagnostic(
                    file_path=file_path, line=1, column=0, message=str(e), severity="error",
                ))

        for warning in caught:
            if not issubclass(warning.category, (SyntaxWarning, DeprecationWarning)):
                continue
            if warning.filename != file_path:
                continue
            diagnostics.append(Diagnostic(
                file_path=file_path,
                line=warning.lineno or 1,
                column=0,
                message=str(warning.message),
                severity="warning",
            ))

        diagnostics.sort(key=lambda d: (d.line, d.column))
        return diagnostics

    def _module(self, path: str, source: str, stub_line: Optional[int] = None) -> _Module:
        """
        Parse ``source`` (cached).

        When it does not parse and ``stub_line`` is given, retry with that
        line replaced by an equally indented ``pass``; the line being edited
        is the usual culprit, and the stub keeps it inside its block.

        Raises:
            EngineError: If the source cannot be parsed.
        """
        digest = hash(source)
        keys = [(path, digest, None)]
        if stub_line is not None:
            keys.append((path, digest, stub_line))

        with self._lock:
            for key in keys:
                cached = self._cache.get(key)
                if cached is not None:
                    self._cache.move_to_end(key)
                    return cached

        lines = source.splitlines()
        key = keys[0]
        try:
            tree = self._parse(source, path)
        except SyntaxError as e:
            if stub_line is None or not 1 <= stub_line <= len(lines):
                raise EngineError(f"Cannot parse {path}: {e.msg} (line {e.lineno})") from e
            patched = list(lines)
            edited = lines[stub_line - 1]
            patched[stub_line - 1] = edited[:len(edited) - len(edited.lstrip())] + "pass"
            key = keys[1]
            try:
                tree = self._parse("\n".join(patched), path)
            except SyntaxError as e2:
                raise EngineError(f"Cannot parse {path}: {e2.msg} (line {e2.lineno})") from e2

        builder = _ScopeBuilder(lines)
        for stmt in tree.body:
            builder.visit(stmt)
        module = _Module(path=path, lines=lines, scopes=builder.scopes)

        with self._lock:
            self._cache[key] = module
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return module

    @staticmethod
    def _parse(source: str, path: str) -> ast.Module:
        with _WARNINGS_LOCK, warnings.catch_warnings():
            warnings.simplefilter("ignore")
            try:
                return ast.parse(source, filename=path)
            except ValueError as e:
                raise SyntaxError(str(e)) from e

    def _cursor_line(self, ctx: Context, lines: List[str]) -> str:
        line = ctx.position.line
        if line < 1 or line > len(lines) + 1 or ctx.position.column < 0:
            raise EngineError(
                f"Position {line}:{ctx.position.column} is outside {ctx.file_path}"
            )
        if line == len(lines) + 1:
            return ""
        return lines[line - 1]

    # =========================================================================
    # DEFINITIONS
    # =========================================================================

    def find_definition(self, ctx: Context) -> Optional[Definition]:
        source = ctx.source_for()
        text = self._cursor_line(ctx, source.splitlines())
        column = min(ctx.position.column, len(text))

        word = None
        for match in IDENTIFIER.finditer(text):
            if match.start() <= column <= match.end():
                word = match
                break
        if word is None or keyword.iskeyword(word.group()):
            return None

        module = self._module(ctx.file_path, source)
        line = ctx.position.line
        name = word.group()

        receiver = RECEIVER_BEFORE_DOT.search(text[:word.start()])
        if receiver is not None:
            return self._find_member(module, receiver.group(1), name, line)

        binding = _resolve(module, name, line)
        if binding is None:
            return None

        if binding.kind == "import":
            followed = self._follow_import(ctx, binding)
            if followed is not None:
                return followed

        return Definition(
            file_path=module.path,
            text=module.text_at(binding.line),
            line=binding.line,
            column=binding.column,
            kind=binding.kind,
        )

    def _find_member(self, module: _Module, receiver: str, name: str, line: int) -> Optional[Definition]:
        if receiver in ("self", "cls"):
            classes = [module.enclosing_class(line)]
        else:
            classes = [module.class_named(receiver, line)]

        # Unknown receiver type: any class in the file declaring the member
        if classes[0] is None:
            classes = [s for s in module.scopes if s.kind == "class"]

        for scope in classes:
            if scope is None:
                continue
            members = scope.members.get(name)
            if members:
                binding = members[0]
                return Definition(
                    file_path=module.path,
                    text=module.text_at(binding.line),
                    line=binding.line,
                    column=binding.column,
                    kind=binding.kind,
                )
        return None

    def _module_candidates(self, origin: str, module_name: Optional[str], level: int) -> List[Path]:
        """Files that could hold ``module_name`` imported from ``origin``."""
        base = Path(origin).parent
        for _ in range(max(level - 1, 0)):
            base = base.parent

        parts = module_name.split(".") if module_name else []
        target = base.joinpath(*parts) if parts else base
        candidates = [target.with_suffix(".py") if parts else None, target / "__init__.py"]
        return [c for c in candidates if c is not None]

    def _follow_import(self, ctx: Context, binding: _Binding) -> Optional[Definition]:
        """Resolve ``from module import name`` to the definition in module."""
        for candidate in self._module_candidates(ctx.file_path, binding.module, binding.level):
            path = str(candidate)
            if find_buffer(ctx.buffers, path) is None and not candidate.is_file():
                continue
            try:
                source = load_source(path, ctx.buffers)
                module = self._module(path, source)
            except EngineError:
                logger.debug(f"Cannot follow import of {binding.original} into {path}")
                continue

            bindings = module.root.bindings.get(binding.original or binding.name)
            if not bindings:
                continue
            target = bindings[-1]
            return Definition(
                file_path=path,
                text=module.text_at(target.line),
                line=target.line,
                column=target.column,
                kind=target.kind,
            )
        return None

    # =========================================================================
    # COMPLETIONS
    # =========================================================================

    def list_completions(self, ctx: Context) -> Optional[List[Completion]]:
        source = ctx.source_for()
        text = self._cursor_line(ctx, source.splitlines())
        before = text[:min(ctx.position.column, len(text))]

        prefix_match = TRAILING_IDENTIFIER.search(before)
        prefix = prefix_match.group() if prefix_match else ""
        head = before[:len(before) - len(prefix)]
        receiver = RECEIVER_BEFORE_DOT.search(head)

        module = self._module(ctx.file_path, source, stub_line=ctx.position.line)
        line = ctx.position.line

        if receiver is not None:
            completions = self._member_completions(module, receiver.group(1), prefix, line)
        elif prefix:
            completions = self._name_completions(module, prefix, line)
        else:
            return None

        return completions or None

    def _completion(self, module: _Module, binding: _Binding) -> Completion:
        return Completion(
            text=binding.name,
            context=module.text_at(binding.line),
            kind=binding.kind,
            file_path=module.path,
            line=binding.line,
            column=binding.column,
        )

    def _member_completions(self, module: _Module, receiver: str, prefix: str, line: int) -> List[Completion]:
        if receiver in ("self", "cls"):
            scope = module.enclosing_class(line)
        else:
            scope = module.class_named(receiver, line)
        if scope is None:
            return []

        results = []
        for name in sorted(scope.members):
            if not name.startswith(prefix):
                continue
            if name.startswith("__") and not prefix.startswith("_"):
                continue
            results.append(self._completion(module, scope.members[name][0]))
        return results

    def _name_completions(self, module: _Module, prefix: str, line: int) -> List[Completion]:
        seen: Dict[str, Completion] = {}
        for scope in module.visible_scopes(line):
            for name, bindings in scope.bindings.items():
                if name in seen or not name.startswith(prefix):
                    continue
                seen[name] = self._completion(module, _pick(bindings, line))

        results = [seen[name] for name in sorted(seen)]
        emitted = set(seen)

        for word in sorted(keyword.kwlist):
            if word.startswith(prefix) and word not in emitted:
                emitted.add(word)
                results.append(Completion(text=word, context="keyword", kind="keyword"))

        for name in sorted(dir(builtins)):
            if name.startswith("_") or not name.startswith(prefix) or name in emitted:
                continue
            value = getattr(builtins, name)
            kind = "class" if isinstance(value, type) else "function"
            results.append(Completion(text=name, context=f"builtin {kind}", kind="builtin"))

        return results
