"""
Unit tests for the ast-based Python engine.

Sources are supplied as buffers so nothing touches the disk unless a
test says so.
"""

import threading
import textwrap

import pytest

from semanticd.engine import (
    PythonEngine,
    Buffer,
    Context,
    Position,
    EngineError,
    create_engine,
)


APP = textwrap.dedent('''\
    import os
    from .helpers import helper as aid


    class Greeter:
        greeting = "hi"

        def __init__(self, name):
            self.name = name

        def greet(self):
            return self.name + self.greeting


    def main(argv):
        greeter = Greeter(argv[0])
        result = greeter.greet()
        return aid(result)
    ''')

HELPERS = textwrap.dedent('''\
    def helper(value):
        return value
    ''')


def ctx(line: int, column: int, source: str = APP, path: str = "pkg/app.py", extra=()) -> Context:
    return Context(
        file_path=path,
        position=Position(line=line, column=column),
        buffers=[Buffer(path, source), *extra],
    )


@pytest.fixture
def python_engine() -> PythonEngine:
    return PythonEngine()


class TestFindDefinition:
    """Tests for PythonEngine.find_definition."""

    def test_class(self, python_engine):
        definition = python_engine.find_definition(ctx(16, 14))

        assert definition.file_path == "pkg/app.py"
        assert definition.text == "class Greeter:"
        assert (definition.line, definition.column) == (5, 6)
        assert definition.kind == "class"

    def test_local_variable(self, python_engine):
        definition = python_engine.find_definition(ctx(17, 13))

        assert definition.line == 16
        assert definition.column == 4
        assert definition.text == "greeter = Greeter(argv[0])"

    def test_parameter(self, python_engine):
        definition = python_engine.find_definition(ctx(16, 22))

        assert definition.text == "def main(argv):"
        assert (definition.line, definition.column) == (15, 9)
        assert definition.kind == "parameter"

    def test_cursor_at_end_of_word(self, python_engine):
        """A cursor just past the identifier still selects it."""
        definition = python_engine.find_definition(ctx(16, 21))

        assert definition.line == 5

    def test_method_through_instance(self, python_engine):
        definition = python_engine.find_definition(ctx(17, 21))

        assert definition.text == "def greet(self):"
        assert (definition.line, definition.column) == (11, 8)

    def test_self_attribute(self, python_engine):
        definition = python_engine.find_definition(ctx(12, 20))

        assert definition.text == "self.name = name"
        assert (definition.line, definition.column) == (9, 13)

    def test_class_attribute_through_self(self, python_engine):
        definition = python_engine.find_definition(ctx(12, 37))

        assert definition.text == 'greeting = "hi"'
        assert definition.line == 6

    def test_follows_from_import_into_buffer(self, python_engine):
        query = ctx(18, 11, extra=[Buffer("pkg/helpers.py", HELPERS)])

        definition = python_engine.find_definition(query)

        assert definition.file_path == "pkg/helpers.py"
        assert definition.text == "def helper(value):"
        assert (definition.line, definition.column) == (1, 4)

    def test_unresolvable_import_stops_at_import_line(self, python_engine):
        definition = python_engine.find_definition(ctx(18, 11))

        assert definition.file_path == "pkg/app.py"
        assert definition.line == 2
        assert definition.kind == "import"

    def test_follows_import_on_disk(self, python_engine, tmp_path):
        (tmp_path / "helpers.py").write_text(HELPERS)
        app = tmp_path / "app.py"
        app.write_text("from helpers import helper\n\nhelper(1)\n")

        definition = python_engine.find_definition(Context(
            file_path=str(app),
            position=Position(line=3, column=0),
        ))

        assert definition.file_path == str(tmp_path / "helpers.py")
        assert definition.line == 1

    def test_keyword_is_nothing(self, python_engine):
        assert python_engine.find_definition(ctx(18, 5)) is None

    def test_whitespace_is_nothing(self, python_engine):
        assert python_engine.find_definition(ctx(3, 0)) is None

    def test_unknown_name_is_nothing(self, python_engine):
        assert python_engine.find_definition(ctx(1, 4, source="x = undefined_name\n")) is None

    def test_latest_binding_before_cursor(self, python_engine):
        source = "value = 1\nvalue = 2\nprint(value)\nvalue = 3\n"

        definition = python_engine.find_definition(ctx(3, 7, source=source))

        assert definition.line == 2

    def test_position_outside_file(self, python_engine):
        with pytest.raises(EngineError):
            python_engine.find_definition(ctx(100, 0))

    def test_unparsable_source(self, python_engine):
        with pytest.raises(EngineError):
            python_engine.find_definition(ctx(1, 4, source="def broken(:\n"))

    def test_missing_file(self, python_engine, tmp_path):
        query = Context(file_path=str(tmp_path / "nope.py"), position=Position(1, 0))

        with pytest.raises(EngineError):
            python_engine.find_definition(query)


class TestListCompletions:
    """Tests for PythonEngine.list_completions."""

    def test_names_in_scope(self, python_engine):
        completions = python_engine.list_completions(ctx(17, 17))

        assert [c.text for c in completions] == ["greeter"]
        assert completions[0].kind == "variable"
        assert completions[0].line == 16

    def test_self_members(self, python_engine):
        """Dunder members are hidden unless asked for."""
        completions = python_engine.list_completions(ctx(12, 20))

        assert [c.text for c in completions] == ["greet", "greeting", "name"]

    def test_class_members(self, python_engine):
        source = "class Box:\n    size = 1\n\n    def grow(self):\n        pass\n\nBox.g\n"

        completions = python_engine.list_completions(ctx(7, 5, source=source))

        assert [c.text for c in completions] == ["grow"]
        assert completions[0].context == "def grow(self):"

    def test_line_being_edited_does_not_break_parsing(self, python_engine):
        source = "def run(value):\n    total = value\n    x = (tot\n"

        completions = python_engine.list_completions(ctx(3, 12, source=source))

        assert [c.text for c in completions] == ["total"]

    def test_keywords(self, python_engine):
        completions = python_engine.list_completions(ctx(1, 3, source="whi\n"))

        assert [(c.text, c.kind) for c in completions] == [("while", "keyword")]

    def test_builtins(self, python_engine):
        completions = python_engine.list_completions(ctx(1, 3, source="pri\n"))

        assert [(c.text, c.kind) for c in completions] == [("print", "builtin")]
        assert completions[0].file_path is None

    def test_no_duplicates(self, python_engine):
        """True is both a keyword and a builtin name."""
        completions = python_engine.list_completions(ctx(1, 2, source="Tr\n"))

        assert [c.text for c in completions].count("True") == 1

    def test_empty_prefix_is_nothing(self, python_engine):
        assert python_engine.list_completions(ctx(16, 0)) is None

    def test_no_match_is_nothing(self, python_engine):
        assert python_engine.list_completions(ctx(1, 5, source="zzzqq\n")) is None

    def test_line_after_last(self, python_engine):
        """The empty line after a trailing newline is a valid position."""
        assert python_engine.list_completions(ctx(19, 0)) is None


class TestParseFile:
    """Tests for PythonEngine.parse_file."""

    def test_clean(self, python_engine):
        assert python_engine.parse_file("pkg/app.py", [Buffer("pkg/app.py", APP)]) == []

    def test_syntax_error(self, python_engine):
        diagnostics = python_engine.parse_file("a.py", [Buffer("a.py", "x = 1\ndef f(:\n")])

        assert len(diagnostics) == 1
        assert diagnostics[0].severity == "error"
        assert diagnostics[0].line == 2
        assert diagnostics[0].file_path == "a.py"

    def test_warning(self, python_engine):
        diagnostics = python_engine.parse_file("a.py", [Buffer("a.py", 'x = "\\d"\n')])

        assert diagnostics
        assert {d.severity for d in diagnostics} == {"warning"}
        assert diagnostics[0].line == 1

    def test_reads_disk(self, python_engine, tmp_path):
        path = tmp_path / "ok.py"
        path.write_text("x = 1\n")

        assert python_engine.parse_file(str(path), []) == []

    def test_buffer_wins_over_disk(self, python_engine, tmp_path):
        path = tmp_path / "ok.py"
        path.write_text("x = 1\n")

        diagnostics = python_engine.parse_file(str(path), [Buffer(str(path), "x = (\n")])

        assert len(diagnostics) == 1

    def test_missing_file(self, python_engine, tmp_path):
        with pytest.raises(EngineError):
            python_engine.parse_file(str(tmp_path / "missing.py"), [])


class TestCache:
    """Parsed-module cache."""

    def test_reuses_parse(self, python_engine):
        python_engine.find_definition(ctx(16, 14))
        python_engine.find_definition(ctx(17, 13))

        assert len(python_engine._cache) == 1

    def test_evicts_oldest(self):
        engine = PythonEngine(cache_size=1)
        engine.find_definition(ctx(1, 0, source="a = 1\n"))
        engine.find_definition(ctx(1, 0, source="b = 2\n"))

        assert len(engine._cache) == 1

    def test_concurrent_queries(self, python_engine):
        results = {}

        def query(i: int):
            source = f"name_{i} = {i}\nprint(name_{i})\n"
            results[i] = python_engine.find_definition(ctx(2, 6, source=source, path=f"m{i}.py"))

        threads = [threading.Thread(target=query, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for i, definition in results.items():
            assert definition.file_path == f"m{i}.py"
            assert definition.text == f"name_{i} = {i}"


def test_create_engine():
    assert isinstance(create_engine("python"), PythonEngine)

    with pytest.raises(ValueError):
        create_engine("cobol")
