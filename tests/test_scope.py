# tests/test_scope.py
"""
Tests for lexical scope construction over script programs.
"""

from weave.scope import Scope, analyze_scopes
from weave.script import parse_program


def _scopes(text: str):
    program = parse_program(text, 0, len(text))
    return analyze_scopes(program.root, program)


# ═══════════════════════════════════════════════════════════════════════
#  Scope objects
# ═══════════════════════════════════════════════════════════════════════

class TestScope:

    def test_find_owner_walks_parents(self):
        root = Scope("module", kind="module")
        inner = Scope("f", parent=root, kind="function")
        root.declare("a")
        assert inner.find_owner("a") is root
        assert inner.find_owner("missing") is None

    def test_has_is_local(self):
        root = Scope("module", kind="module")
        inner = Scope("block", parent=root)
        root.declare("a")
        assert not inner.has("a")
        assert root.has("a")

    def test_closest_function_skips_blocks(self):
        root = Scope("module", kind="module")
        fn = Scope("f", parent=root, kind="function")
        block = Scope("b1", parent=fn)
        nested = Scope("b2", parent=block)
        assert nested.closest_function() is fn
        assert Scope("b3", parent=root).closest_function() is root

    def test_children_are_registered(self):
        root = Scope("module", kind="module")
        child = Scope("f", parent=root, kind="function")
        assert root.children == [child]


# ═══════════════════════════════════════════════════════════════════════
#  Declarations
# ═══════════════════════════════════════════════════════════════════════

class TestDeclarations:

    def test_top_level_declarations(self):
        tree = _scopes("let a = 1; const b = 2; var c; function f() {} class K {}")
        assert set(tree.root.declarations) == {"a", "b", "c", "f", "K"}

    def test_destructuring_declaration(self):
        tree = _scopes("const {a, b: [c, d], ...rest} = obj;")
        assert set(tree.root.declarations) == {"a", "c", "d", "rest"}
        assert tree.globals == {"obj"}

    def test_parameters_belong_to_function(self):
        tree = _scopes("function f(x, y = 1, ...rest) { return x + y; }")
        fn = tree.root.children[0]
        assert fn.kind == "function"
        assert set(fn.declarations) == {"x", "y", "rest"}
        assert set(tree.root.declarations) == {"f"}

    def test_arrow_with_single_parameter(self):
        tree = _scopes("const double = x => x * 2;")
        fn = tree.root.children[0]
        assert fn.has("x")
        assert tree.globals == set()

    def test_function_body_shares_function_scope(self):
        tree = _scopes("function f() { let local = 1; }")
        fn = tree.root.children[0]
        assert fn.has("local")
        assert fn.children == []

    def test_var_hoists_to_function(self):
        tree = _scopes("function f(x) { if (x) { var v = 1; let w = 2; } }")
        fn = tree.root.children[0]
        block = fn.children[0]
        assert fn.has("v")
        assert block.has("w")
        assert not block.has("v")

    def test_var_in_top_level_block_hoists_to_module(self):
        tree = _scopes("{ var v = 1; let w = 2; }")
        assert tree.root.has("v")
        assert not tree.root.has("w")
        assert tree.root.children[0].has("w")

    def test_function_expression_name_is_local(self):
        tree = _scopes("const g = function h() { return h; };")
        assert set(tree.root.declarations) == {"g"}
        assert tree.root.children[0].has("h")
        assert tree.globals == set()

    def test_for_loop_binding(self):
        tree = _scopes("for (let i = 0; i < 3; i++) { total += i; }")
        loop = tree.root.children[0]
        assert loop.has("i")
        assert not tree.root.has("i")
        assert tree.globals == {"total"}

    def test_for_of_var_hoists(self):
        tree = _scopes("for (var item of items) {}")
        assert tree.root.has("item")

    def test_for_in_const_is_loop_local(self):
        tree = _scopes("for (const key in obj) {}")
        assert not tree.root.has("key")
        assert tree.root.children[0].has("key")

    def test_catch_parameter(self):
        tree = _scopes("try { run(); } catch (err) { report(err); }")
        assert "err" not in tree.globals
        assert tree.globals == {"run", "report"}

    def test_imports_declare_at_root(self):
        tree = _scopes(
            'import def, { a as b, c } from "m";\n'
            'import * as ns from "n";'
        )
        assert set(tree.root.declarations) == {"def", "b", "c", "ns"}
        assert tree.globals == set()


# ═══════════════════════════════════════════════════════════════════════
#  References and globals
# ═══════════════════════════════════════════════════════════════════════

class TestReferences:

    def test_unresolved_names_are_globals(self):
        tree = _scopes("let a = 1; console.log(a, b);")
        assert tree.globals == {"console", "b"}

    def test_declaring_identifiers_are_not_references(self):
        tree = _scopes("let a = 1;")
        assert tree.references == []

    def test_references_record_their_scope(self):
        tree = _scopes("let a = 1; function f() { return a; }")
        (_, scope), = tree.references
        assert scope is tree.root.children[0]
        assert scope.find_owner("a") is tree.root

    def test_shadowed_name_resolves_locally(self):
        tree = _scopes("let n = 0; function f(n) { return n; }")
        (_, scope), = tree.references
        assert scope.find_owner("n") is tree.root.children[0]

    def test_shorthand_property_is_a_reference(self):
        tree = _scopes("const o = { missing };")
        assert tree.globals == {"missing"}

    def test_handler_scope_nests_under_module(self):
        text = "let count = 0;"
        program = parse_program(text, 0, len(text))
        module = analyze_scopes(program.root, program)

        handler_text = "() => count += 1"
        handler = parse_program(handler_text, 0, len(handler_text))
        arrow = handler.root.named_children[0].named_children[0]
        tree = analyze_scopes(arrow, handler, parent=module.root)
        assert tree.root.parent is module.root
        assert tree.root.kind == "function"
        assert tree.globals == set()
