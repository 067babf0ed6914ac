"""
Content preprocessors.

A preprocessor turns one source format into the text the placeholder engine
renders (Markdown into HTML, a stylesheet with @imports into one bundle, ...).
Preprocessors are matched against the document path, first match wins, and
declare the extension of what they produce.

Includes triggered by a preprocessor go through `data["include"]`, the same
callable templates use, so cycle detection covers both.
"""

import logging
import posixpath
import re
import secrets
from typing import Any, Dict, List, Optional, Pattern, Union

import markdown as python_markdown
import mistune
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger('Tessera.preprocessors')

HTML_INCLUDE_REGEX = re.compile(r'<html-include((?:\s[a-z_]{1,100}?=".{0,1024}?"){1,100})\s?/?>')
ATTRIBUTE_REGEX = re.compile(r'([a-z_]{1,100}?)="(.{0,1024}?)"')
CSS_IMPORT_REGEX = re.compile(
    r'''@import\s+(?:url\(\s*)?(["']?)([^"')\s;]+)\1\s*\)?\s*;[ \t]*\r?\n?''', re.IGNORECASE
)
PLACEHOLDER_REGEX = re.compile(r'\{\{.{1,1024}?\}\}')


class Preprocessor:
    """
    Base class for content preprocessors.

    Subclasses set `name`, `extension` (a path suffix or a compiled regex
    searched in the path) and `output_extension`, and implement `process`.
    """

    name = 'passthrough'
    extension: Union[str, Pattern, None] = None
    output_extension: Optional[str] = None

    def matches(self, path: str) -> bool:
        if not path or self.extension is None:
            return False
        if isinstance(self.extension, str):
            return path.endswith(self.extension)
        return bool(self.extension.search(path))

    async def process(self, content: str, data: Dict[str, Any]) -> str:
        return content

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r}>"


async def _replace_async(pattern: Pattern, content: str, replace) -> str:
    """re.sub with an async replacement, applied in document order."""
    pieces = []
    last_end = 0
    for match in pattern.finditer(content):
        pieces.append(content[last_end:match.start()])
        pieces.append(await replace(match))
        last_end = match.end()
    pieces.append(content[last_end:])
    return ''.join(pieces)


class HtmlPreprocessor(Preprocessor):
    """Resolves `<html-include src="..." key="value">` tags."""

    name = 'html'
    extension = re.compile(r'\.html?$')
    output_extension = '.html'

    async def process(self, content: str, data: Dict[str, Any]) -> str:
        include = (data or {}).get('include')
        if not callable(include):
            return content

        async def replace(match):
            params = {
                key: value for key, value in ATTRIBUTE_REGEX.findall(match.group(1))
                if not key.startswith('_')
            }
            return await include(params.get('src'), params)

        return await _replace_async(HTML_INCLUDE_REGEX, content, replace)


class CssPreprocessor(Preprocessor):
    """Bundles local `@import` rules into the stylesheet."""

    name = 'css'
    extension = '.css'
    output_extension = '.css'

    async def process(self, content: str, data: Dict[str, Any]) -> str:
        include = (data or {}).get('include')
        if not callable(include):
            return content

        async def replace(match):
            target = match.group(2)
            if re.match(r'^(?:[a-z]+:)?//', target, re.IGNORECASE):
                return match.group(0)
            if not target.startswith(('./', '../', '/')):
                target = './' + target
            return await include(target)

        return await _replace_async(CSS_IMPORT_REGEX, content, replace)


class MarkdownPreprocessor(Preprocessor):
    """
    Markdown to HTML, followed by html-include resolution.

    `engine` selects the converter: "mistune" (default) or "markdown"
    (Python-Markdown). Placeholders are set aside during conversion so
    Markdown never touches expression text.
    """

    name = 'markdown'
    extension = '.md'
    output_extension = '.html'

    ENGINES = ('mistune', 'markdown')

    def __init__(self, engine: str = 'mistune'):
        if engine not in self.ENGINES:
            raise ValueError(f"Unknown markdown engine: {engine}")
        self.engine = engine
        self.html = HtmlPreprocessor()
        self.markdown_parser = self.create_markdown_parser() if engine == 'mistune' else None

    def create_markdown_parser(self):
        """Create a Mistune markdown parser with a custom renderer."""
        class CustomRenderer(mistune.HTMLRenderer):
            def __init__(self):
                super().__init__(escape=False)

            def block_code(self, code, info=None):
                lang = info.split()[0] if info and info.strip() else ''
                attr = f' class="language-{mistune.escape(lang)}"' if lang else ''
                return f'<pre{attr}><code{attr}>{mistune.escape(code)}</code></pre>\n'

        return mistune.create_markdown(
            renderer=CustomRenderer(),
            plugins=['table', 'task_lists', 'strikethrough']
        )

    def convert(self, text: str) -> str:
        """Convert markdown text to HTML."""
        if self.engine == 'markdown':
            return python_markdown.markdown(text, extensions=['tables', 'fenced_code']) + '\n'
        return self.markdown_parser(text)

    async def process(self, content: str, data: Dict[str, Any]) -> str:
        stash = {}
        nonce = secrets.token_hex(4)

        def hide(match):
            key = f"TESSERAPLACEHOLDER{len(stash)}X{nonce}"
            stash[key] = match.group(0)
            return key

        text = PLACEHOLDER_REGEX.sub(hide, content.replace('\r\n', '\n'))
        html = self.convert(text)
        for key, placeholder in stash.items():
            html = html.replace(key, placeholder)
        return await self.html.process(html, data)


class JinjaPreprocessor(Preprocessor):
    """
    Renders `.j2` / `.jinja` sources with a sandboxed Jinja2 environment.

    The document data is the template context, so `{{ include("x.html") }}`
    works in Jinja syntax as well.
    """

    name = 'jinja'
    extension = re.compile(r'\.(?:j2|jinja)$')
    output_extension = '.html'

    def __init__(self):
        self.env = SandboxedEnvironment(enable_async=True, autoescape=False)

    async def process(self, content: str, data: Dict[str, Any]) -> str:
        template = self.env.from_string(content)
        return await template.render_async(**(data or {}))


DEFAULT_PREPROCESSORS: List[Preprocessor] = [
    HtmlPreprocessor(),
    CssPreprocessor(),
    MarkdownPreprocessor(),
    JinjaPreprocessor(),
]


def select_preprocessor(path: str, preprocessors: Optional[List[Preprocessor]] = None) -> Optional[Preprocessor]:
    """First preprocessor matching `path`, or None."""
    candidates = DEFAULT_PREPROCESSORS if preprocessors is None else preprocessors
    for preprocessor in candidates:
        if preprocessor.matches(path):
            return preprocessor
    return None


def get_output_file_extension(path: str, preprocessors: Optional[List[Preprocessor]] = None) -> str:
    """
    Extension of the file `path` turns into, without running any transform.

    Uses `select_preprocessor`, so the prediction always agrees with dispatch.
    """
    preprocessor = select_preprocessor(path, preprocessors)
    if preprocessor is not None and preprocessor.output_extension:
        return preprocessor.output_extension
    return posixpath.splitext(posixpath.basename(path or ''))[1]
