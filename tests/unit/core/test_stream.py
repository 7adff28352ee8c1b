"""Unit tests for core/stream.py"""

from markdown_it.token import Token

from mdsite.core.stream import BufferedStream, flatten, fold, render_html
from mdsite.core.utils.tokens import text_token


def _types(tokens):
    return [t.type for t in tokens]


def test_flatten_expands_inline_runs(parser):
    """Inline children are delimited by inline_open/inline_close."""
    flat = list(flatten(parser.parse("hello *world*")))
    assert _types(flat) == [
        "paragraph_open", "inline_open",
        "text", "em_open", "text", "em_close",
        "inline_close", "paragraph_close",
    ]


def test_flatten_expands_images(parser):
    """An image becomes image_open, its alt tokens, image_close."""
    flat = list(flatten(parser.parse("![alt *text*](a.png)")))
    start = _types(flat).index("image_open")
    assert flat[start].attrGet("src") == "a.png"
    assert _types(flat)[start:start + 6] == [
        "image_open", "text", "em_open", "text", "em_close", "image_close",
    ]


def test_flatten_expands_fences(parser):
    """A fence becomes fence_open, one text token, fence_close."""
    flat = list(flatten(parser.parse("```python\nx = 1\n```\n")))
    assert _types(flat) == ["fence_open", "text", "fence_close"]
    assert flat[0].info == "python"
    assert flat[1].content == "x = 1\n"


def test_flatten_expands_front_matter(parser):
    """Front matter becomes front_matter_open, text, front_matter_close."""
    flat = list(flatten(parser.parse("---\ntitle: x\n---\n\nbody\n")))
    assert _types(flat)[:3] == ["front_matter_open", "text", "front_matter_close"]
    assert "title: x" in flat[1].content


def test_fold_then_render_matches_markdown_it(parser):
    """An untouched stream renders exactly like markdown-it itself."""
    text = "# Title\n\nSome *text* and ![img](a.png \"t\").\n\n```js\nlet a = 1;\n```\n\n- one\n- two\n"
    env = {}
    tokens = parser.parse(text, env)
    assert render_html(parser, flatten(tokens), env) == parser.render(text)


def test_fold_fence_with_html_renders_pre_code():
    """A fence holding raw markup is rendered inside pre/code with the language class."""
    stream = [
        Token("fence_open", "code", 1, info="go"),
        Token("html_block", "", 0, content="<span>x</span>"),
        Token("fence_close", "code", -1),
    ]
    folded = fold(stream)
    assert len(folded) == 1
    assert folded[0].content == '<pre><code class="language-go"><span>x</span></code></pre>\n'


def test_fold_front_matter_renders_escaped_pre():
    """Unconsumed front matter is kept as escaped preformatted text."""
    stream = [
        Token("front_matter_open", "", 1),
        text_token("a: <b>"),
        Token("front_matter_close", "", -1),
    ]
    folded = fold(stream)
    assert folded[0].type == "html_block"
    assert folded[0].content == "<pre>a: &lt;b&gt;</pre>\n"


def test_fold_drops_unbalanced_close(caplog):
    """A close without a matching open is logged and dropped."""
    folded = fold([text_token("a"), Token("image_close", "img", -1)])
    assert _types(folded) == ["text"]
    assert "unbalanced `image_close`" in caplog.text


def test_fold_flushes_unterminated_region():
    """Tokens of a region that never closes are kept in the parent."""
    folded = fold([Token("image_open", "img", 1), text_token("a"), text_token("b")])
    assert [t.content for t in folded] == ["a", "b"]


def test_buffered_stream_replays_buffer_first():
    """Buffered tokens are emitted before anything new is pulled."""
    stream = BufferedStream([text_token("up")])
    stream.buffer.append(text_token("buffered"))
    assert [t.content for t in stream] == ["buffered", "up"]


def test_accumulate_until_collects_text_and_math():
    """Text and inline math are concatenated, and every pulled token stays buffered."""
    upstream = [
        text_token("a "),
        Token("math_inline", "math", 0, content="x^2"),
        Token("image_close", "img", -1),
        text_token("after"),
    ]
    stream = BufferedStream(upstream)
    assert stream.accumulate_until("image_close", "image") == "a $x^2$"
    assert _types(stream.buffer) == ["text", "math_inline", "image_close"]
    assert [t.content for t in stream][-1] == "after"


def test_accumulate_until_rejects_other_tokens(caplog):
    """A token that is neither text nor math stops accumulation with an error."""
    stream = BufferedStream([text_token("a"), Token("em_open", "em", 1), Token("image_close", "img", -1)])
    assert stream.accumulate_until("image_close", "image") is None
    assert "could not parse image, found `em_open`" in caplog.text
    assert _types(stream.buffer) == ["text", "em_open"]


def test_accumulate_until_end_of_stream():
    """Running out of tokens returns None with the pulled tokens buffered."""
    stream = BufferedStream([text_token("a")])
    assert stream.accumulate_until("fence_close", "code block") is None
    assert len(stream.buffer) == 1
