# tests/conftest.py
"""
Shared template sources for the weave test-suite.

Test modules import these constants directly::

    from tests.conftest import COUNTER_TEMPLATE
"""

HELLO_TEMPLATE = "<script>let x = 1;</script>{x}"

COUNTER_TEMPLATE = """\
<script>
    let n = 0;
    function inc() { n += 1; }
</script>
<button on:click={inc}>{n}</button>
"""

INLINE_HANDLER_TEMPLATE = """\
<script>
    let count = 0;
</script>
<button on:click={() => count += 2}>{count}</button>
"""

# Declared out of order on purpose: c reads b, b reads a.
REACTIVE_CHAIN_TEMPLATE = """\
<script>
    let a = 1;
    $: c = b + 1;
    $: b = a + 1;
    function bump() { a += 1; }
</script>
<div>
    <p>{a}</p>
    <p>{b}</p>
    <p>{c}</p>
    <button on:click={bump}>+</button>
</div>
"""

LONG_CHAIN_TEMPLATE = """\
<script>
    let a = 1;
    $: e = d + 1;
    $: d = c + 1;
    $: c = b + 1;
    $: b = a + 1;
    function bump() { a += 1; }
</script>
<p>{e}</p>
<button on:click={bump}>+</button>
"""

DIAMOND_TEMPLATE = """\
<script>
    let a = 1;
    $: d = b + c;
    $: c = a * 3;
    $: b = a * 2;
    function bump() { a += 1; }
</script>
<p>{d}</p>
<button on:click={bump}>+</button>
"""

CYCLE_TEMPLATE = """\
<script>
    $: a = b + 1;
    $: b = a + 1;
</script>
<p>{a}</p>
"""

# record() is a global the end-to-end harness provides.
REENTRANT_TEMPLATE = """\
<script>
    let count = 0;
    $: doubled = record(count * 2);
    $: quadrupled = doubled * 2;
    function inc() { count += 1; }
</script>
<button on:click={inc}>{count}</button>
<p>{doubled}</p>
<p>{quadrupled}</p>
"""

STATIC_TEMPLATE = """\
<script>
    const greeting = "hello";
    let n = 0;
    function inc() { n++; }
</script>
<h1>{greeting}</h1>
<button on:click={inc}>{n}</button>
"""

CALL_TEMPLATE = """\
<script>
    let prefix = "#";
    let n = 1;
    function format(v) { return prefix + v; }
    const scale = (x) => x * factor;
    let factor = 2;
    function next() { n += 1; prefix = "no. "; }
</script>
<p>{format(n)}</p>
<p>{scale(3)}</p>
<button on:click={next}>next</button>
"""

ATTRIBUTE_TEMPLATE = """\
<script>
    let label = "first";
    function rename() { label = "second"; }
</script>
<p class="static" title={label}>text</p>
<input type='text' value={label} />
<button on:click={rename}>rename</button>
"""

NO_SCRIPT_TEMPLATE = """\
<div>
    <h1>Title</h1>
    <p>{Math.max(1, 2)}</p>
</div>
"""

MISMATCHED_TEMPLATE = "<div><span></div>"
