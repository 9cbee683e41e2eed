# tests/test_end_to_end.py
"""
End-to-end tests: compile templates, load the generated modules in Node.js
against a minimal fake DOM, and check what they render.

Skipped when ``node`` is not on PATH.
"""

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from weave.compiler import compile_template
from weave.config import CompileOptions
from tests.conftest import (
    ATTRIBUTE_TEMPLATE,
    CALL_TEMPLATE,
    COUNTER_TEMPLATE,
    DIAMOND_TEMPLATE,
    HELLO_TEMPLATE,
    INLINE_HANDLER_TEMPLATE,
    LONG_CHAIN_TEMPLATE,
    REACTIVE_CHAIN_TEMPLATE,
    REENTRANT_TEMPLATE,
)

NODE = shutil.which("node")

pytestmark = pytest.mark.skipif(NODE is None, reason="node is not installed")

# Fake DOM: just enough of Node/Text/Element for the generated code.
# Text.data writes are counted in `writes`; record() counts calls in `runs`.
HARNESS = r"""
let writes = 0;
let runs = 0;

class Node {
  constructor() { this.childNodes = []; this.parentNode = null; }
  appendChild(child) {
    child.parentNode = this;
    this.childNodes.push(child);
    return child;
  }
  removeChild(child) {
    const i = this.childNodes.indexOf(child);
    if (i < 0) throw new Error("removeChild: not a child");
    this.childNodes.splice(i, 1);
    child.parentNode = null;
    return child;
  }
  get textContent() { return this.childNodes.map((c) => c.textContent).join(""); }
}

class Text extends Node {
  constructor(data) { super(); this._data = String(data); }
  get data() { return this._data; }
  set data(value) { writes++; this._data = String(value); }
  get textContent() { return this._data; }
}

class Element extends Node {
  constructor(tagName) {
    super();
    this.tagName = tagName;
    this.attributes = {};
    this.listeners = {};
  }
  setAttribute(name, value) { this.attributes[name] = String(value); }
  addEventListener(type, fn) {
    (this.listeners[type] = this.listeners[type] || []).push(fn);
  }
  removeEventListener(type, fn) {
    this.listeners[type] = (this.listeners[type] || []).filter((g) => g !== fn);
  }
  dispatch(type) {
    for (const fn of [...(this.listeners[type] || [])]) fn({ type, target: this });
  }
  listenerCount() {
    return Object.values(this.listeners).reduce((n, fns) => n + fns.length, 0);
  }
}

function find(node, tagName) {
  if (node.tagName === tagName) return node;
  for (const child of node.childNodes) {
    const found = find(child, tagName);
    if (found) return found;
  }
  return null;
}

function findAll(node, tagName, out = []) {
  if (node.tagName === tagName) out.push(node);
  for (const child of node.childNodes) findAll(child, tagName, out);
  return out;
}

globalThis.document = {
  createElement: (tagName) => new Element(tagName),
  createTextNode: (data) => new Text(data),
};
globalThis.record = (value) => { runs++; return value; };

const { default: factory } = await import("__COMPONENT__");
const target = new Element("main");
const out = {};
const texts = (tagName) => findAll(target, tagName).map((el) => el.textContent);

// __SCENARIO__

console.log(JSON.stringify(out));
"""


def _run(
    tmp_path: Path,
    template: str,
    scenario: str,
    fmt: str = "esm",
    files: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Compile *template*, run *scenario* against it and return ``out``."""
    result = compile_template(template, CompileOptions(format=fmt))
    component = f"component.{'mjs' if fmt == 'esm' else 'cjs'}"
    (tmp_path / component).write_text(result.js, encoding="utf-8")
    for name, text in (files or {}).items():
        (tmp_path / name).write_text(text, encoding="utf-8")

    harness = HARNESS.replace("__COMPONENT__", f"./{component}").replace("// __SCENARIO__", scenario)
    harness_path = tmp_path / "harness.mjs"
    harness_path.write_text(harness, encoding="utf-8")

    proc = subprocess.run(
        [NODE, str(harness_path)],
        capture_output=True,
        text=True,
        timeout=30,
    )
    assert proc.returncode == 0, f"{proc.stderr}\n--- generated ---\n{result.js}"
    return json.loads(proc.stdout.strip().splitlines()[-1])


MOUNT = """
const c = factory();
c.create(target);
"""


class TestRendering:

    def test_hello(self, tmp_path):
        out = _run(tmp_path, HELLO_TEMPLATE, MOUNT + "out.text = target.textContent;")
        assert out == {"text": "1"}

    def test_text_escaping(self, tmp_path):
        template = "<p>say \"hi\" \\ it's héllo ✓</p>"
        out = _run(tmp_path, template, MOUNT + "out.text = target.textContent;")
        assert out["text"] == "say \"hi\" \\ it's héllo ✓"

    def test_nested_markup(self, tmp_path):
        template = "<div><p>a</p><p>b<b>c</b></p></div>"
        out = _run(tmp_path, template, MOUNT + """
out.text = target.textContent;
out.divs = target.childNodes.length;
out.ps = texts("p");
""")
        assert out == {"text": "abc", "divs": 1, "ps": ["a", "bc"]}

    def test_attributes(self, tmp_path):
        out = _run(tmp_path, ATTRIBUTE_TEMPLATE, MOUNT + """
const p = find(target, "p");
const input = find(target, "input");
out.before = [p.attributes.class, p.attributes.title, input.attributes.type, input.attributes.value];
find(target, "button").dispatch("click");
out.after = [p.attributes.class, p.attributes.title, input.attributes.value];
""")
        assert out["before"] == ["static", "first", "text", "first"]
        assert out["after"] == ["static", "second", "second"]

    def test_call_in_template(self, tmp_path):
        out = _run(tmp_path, CALL_TEMPLATE, MOUNT + """
out.before = texts("p");
find(target, "button").dispatch("click");
out.after = texts("p");
""")
        assert out["before"] == ["#1", "6"]
        assert out["after"] == ["no. 2", "6"]

    def test_imported_helper(self, tmp_path):
        template = (
            '<script>import { fmt } from "./fmt.mjs";\n'
            "let n = 1;\n"
            "function inc() { n += 1; }</script>"
            "<p>{fmt(n)}</p><button on:click={inc}>+</button>"
        )
        out = _run(
            tmp_path, template,
            MOUNT + 'find(target, "button").dispatch("click"); out.ps = texts("p");',
            files={"fmt.mjs": 'export const fmt = (v) => "#" + v;\n'},
        )
        assert out["ps"] == ["#2"]

    def test_top_level_reassignment(self, tmp_path):
        out = _run(tmp_path, "<script>let n = 0;n = 5;</script><p>{n}</p>", MOUNT + 'out.ps = texts("p");')
        assert out["ps"] == ["5"]

    def test_regex_literal(self, tmp_path):
        template = """<script>let s = "it's";</script><p>{s.replace(/'/g, "-")}</p>"""
        out = _run(tmp_path, template, MOUNT + 'out.ps = texts("p");')
        assert out["ps"] == ["it-s"]

    def test_sequence_expression(self, tmp_path):
        template = ("<script>let a = 1; let b = 2; function f() { b = 3; }</script>"
                    "<p title={a, b}>{a, b}</p><button on:click={f}>go</button>")
        out = _run(tmp_path, template, MOUNT + """
out.before = [texts("p")[0], find(target, "p").attributes.title];
find(target, "button").dispatch("click");
out.after = [texts("p")[0], find(target, "p").attributes.title];
""")
        assert out == {"before": ["2", "2"], "after": ["3", "3"]}

    def test_heading_tags(self, tmp_path):
        out = _run(tmp_path, "<h1>Title</h1><h2>{1 + 1}</h2>",
                   MOUNT + 'out.text = [texts("h1"), texts("h2")];')
        assert out["text"] == [["Title"], ["2"]]


class TestEvents:

    def test_counter(self, tmp_path):
        out = _run(tmp_path, COUNTER_TEMPLATE, MOUNT + """
const button = find(target, "button");
out.before = button.textContent;
button.dispatch("click");
button.dispatch("click");
out.after = button.textContent;
""")
        assert out == {"before": "0", "after": "2"}

    def test_inline_handler(self, tmp_path):
        out = _run(tmp_path, INLINE_HANDLER_TEMPLATE, MOUNT + """
find(target, "button").dispatch("click");
out.text = target.textContent;
""")
        assert out["text"] == "2"

    def test_only_changed_nodes_are_written(self, tmp_path):
        template = (
            "<script>let a = 0; let b = 0;\n"
            "function incA() { a += 1; }</script>"
            "<p>{a}</p><p>{b}</p><button on:click={incA}>+</button>"
        )
        out = _run(tmp_path, template, MOUNT + """
writes = 0;
find(target, "button").dispatch("click");
out.writes = writes;
out.ps = texts("p");
""")
        assert out == {"writes": 1, "ps": ["1", "0"]}

    def test_commonjs_module(self, tmp_path):
        out = _run(tmp_path, COUNTER_TEMPLATE, MOUNT + """
find(target, "button").dispatch("click");
out.text = target.textContent;
""", fmt="cjs")
        assert out["text"] == "1"


class TestUpdate:

    def test_empty_change_set_writes_nothing(self, tmp_path):
        out = _run(tmp_path, COUNTER_TEMPLATE, MOUNT + """
writes = 0;
c.update([]);
c.update(new Uint32Array(1));
c.update(["not_a_binding"]);
out.writes = writes;
""")
        assert out["writes"] == 0

    def test_update_by_name(self, tmp_path):
        out = _run(tmp_path, COUNTER_TEMPLATE, MOUNT + """
writes = 0;
c.update(["n"]);
out.writes = writes;
""")
        assert out["writes"] == 1

    def test_instances_are_independent(self, tmp_path):
        out = _run(tmp_path, COUNTER_TEMPLATE, """
const first = factory();
const second = factory();
const t1 = new Element("main");
const t2 = new Element("main");
first.create(t1);
second.create(t2);
find(t1, "button").dispatch("click");
out.texts = [t1.textContent, t2.textContent];
""")
        assert out["texts"] == ["1", "0"]


class TestReactivity:

    def test_chain_declared_out_of_order(self, tmp_path):
        out = _run(tmp_path, REACTIVE_CHAIN_TEMPLATE, MOUNT + """
out.before = texts("p");
find(target, "button").dispatch("click");
out.after = texts("p");
""")
        assert out["before"] == ["1", "2", "3"]
        assert out["after"] == ["2", "3", "4"]

    def test_long_chain(self, tmp_path):
        out = _run(tmp_path, LONG_CHAIN_TEMPLATE, MOUNT + """
out.before = texts("p");
find(target, "button").dispatch("click");
out.after = texts("p");
""")
        assert out == {"before": ["5"], "after": ["6"]}

    def test_diamond(self, tmp_path):
        out = _run(tmp_path, DIAMOND_TEMPLATE, MOUNT + """
out.before = texts("p");
find(target, "button").dispatch("click");
out.after = texts("p");
""")
        assert out == {"before": ["5"], "after": ["10"]}

    def test_one_update_per_event(self, tmp_path):
        out = _run(tmp_path, REENTRANT_TEMPLATE, MOUNT + """
let calls = 0;
const original = c.update;
c.update = (changed) => { calls++; return original(changed); };
const runsBefore = runs;
find(target, "button").dispatch("click");
out.calls = calls;
out.runs = runs - runsBefore;
out.ps = texts("p");
out.button = find(target, "button").textContent;
""")
        assert out == {"calls": 1, "runs": 1, "ps": ["2", "4"], "button": "1"}

    def test_constant_reactive_declaration(self, tmp_path):
        out = _run(tmp_path, "<script>$: answer = 6 * 7;</script><p>{answer}</p>",
                   MOUNT + 'out.ps = texts("p");')
        assert out["ps"] == ["42"]

    def test_empty_dispatch_runs_nothing(self, tmp_path):
        template = """<script>
let count = 0;
let hidden = 0;
$: doubled = record(count * 2);
function poke() { hidden += 1; $$invalidate([]); }
</script>
<p>{doubled}</p><button on:click={poke}>poke</button>"""
        out = _run(tmp_path, template, MOUNT + """
const runsBefore = runs;
writes = 0;
find(target, "button").dispatch("click");
out.runs = runs - runsBefore;
out.writes = writes;
out.ps = texts("p");
""")
        assert out == {"runs": 0, "writes": 0, "ps": ["0"]}


class TestDestroy:

    def test_destroy_empties_target(self, tmp_path):
        out = _run(tmp_path, COUNTER_TEMPLATE, MOUNT + """
const button = find(target, "button");
c.destroy();
out.children = target.childNodes.length;
out.listeners = button.listenerCount();
button.dispatch("click");
out.text = button.textContent;
""")
        assert out == {"children": 0, "listeners": 0, "text": "0"}

    def test_destroy_top_level_text(self, tmp_path):
        out = _run(tmp_path, "<script>let x = 1;</script>before {x} after<p>p</p>", MOUNT + """
c.destroy();
out.children = target.childNodes.length;
""")
        assert out["children"] == 0
