import asyncio
import inspect
import json
import logging
import os
import posixpath
import shutil
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import csscompressor
import rjsmin
import yaml
from markupsafe import Markup

from .errors import CyclicDependencyError, MissingResourceError, TemplateError, error_marker
from .filters import merge_filters
from .frontmatter import extract, merge_data
from .preprocessors import (
    DEFAULT_PREPROCESSORS,
    CssPreprocessor,
    HtmlPreprocessor,
    JinjaPreprocessor,
    MarkdownPreprocessor,
    Preprocessor,
    get_output_file_extension,
    select_preprocessor,
)
from .template import render

logger = logging.getLogger('Tessera')

Resolve = Callable[[str], Union[Optional[str], Awaitable[Optional[str]]]]


def normalize_path(path: str) -> str:
    """Canonical '/'-separated, root-relative form used as a path identity."""
    return posixpath.normpath((path or '').replace('\\', '/')).lstrip('/')


@dataclass(frozen=True)
class ResolutionContext:
    """
    State shared by one top-level resolution and all of its recursion.

    `stack` holds the paths currently being resolved on this branch. It is
    never mutated; `push` returns a new context for the child call.
    """

    resolve: Resolve
    filters: Dict[str, Callable] = field(default_factory=dict)
    preprocessors: Tuple[Preprocessor, ...] = ()
    stack: Tuple[str, ...] = ()

    def push(self, path: str) -> 'ResolutionContext':
        return replace(self, stack=self.stack + (path,))


class FileResolver:
    """Resolve callback reading documents below a root directory."""

    def __init__(self, root_dir: str = '.'):
        self.root_dir = os.path.abspath(root_dir)

    async def __call__(self, path: str) -> Optional[str]:
        return await asyncio.to_thread(self.read, path)

    def read(self, path: str) -> Optional[str]:
        full_path = os.path.abspath(os.path.join(self.root_dir, path))
        if os.path.commonpath([full_path, self.root_dir]) != self.root_dir:
            raise ValueError(f"Path traversal attempt detected: {path}")
        if not os.path.isfile(full_path):
            return None
        with open(full_path, 'r', encoding='utf-8', newline='') as f:
            return f.read()


class TemplateProcessor:
    """
    Resolves a document: frontmatter, preprocessing, placeholder rendering,
    includes and layouts, recursively.

    Args:
        resolve: Callable returning the raw content for a path, or None when
            there is none. May be sync or async.
        filters: Extra filters merged over the built-ins.
        preprocessors: Ordered preprocessor list (defaults to html, css,
            markdown, jinja).
        includes: Root for include paths that are not relative.
        layouts: Root for layout names.
    """

    def __init__(self, resolve: Resolve, filters=None, preprocessors: Optional[List[Preprocessor]] = None,
                 includes: str = '_includes', layouts: str = '_layouts'):
        self.resolve = resolve
        self.filters = merge_filters(filters)
        self.preprocessors = tuple(DEFAULT_PREPROCESSORS if preprocessors is None else preprocessors)
        self.includes = normalize_path(includes)
        self.layouts = normalize_path(layouts)

    def create_context(self, path: str) -> ResolutionContext:
        return ResolutionContext(
            resolve=self.resolve,
            filters=self.filters,
            preprocessors=self.preprocessors,
            stack=(normalize_path(path),),
        )

    def resolve_include_path(self, target: str, current_path: str) -> str:
        """
        `./x` and `../x` are relative to the including document, `/x` to the
        root; anything else lives under the includes root.
        """
        target = target.replace('\\', '/')
        if target.startswith('/'):
            return normalize_path(target)
        if target.startswith(('./', '../')):
            return normalize_path(posixpath.join(posixpath.dirname(current_path), target))
        return normalize_path(posixpath.join(self.includes, target))

    def resolve_layout_path(self, layout: str, current_path: str, context: ResolutionContext) -> str:
        """A layout name without extension takes the document's output extension."""
        layout = layout.replace('\\', '/')
        if not posixpath.splitext(layout)[1]:
            layout += get_output_file_extension(current_path, list(context.preprocessors)) or '.html'
        if layout.startswith(('/', './', '../')):
            return self.resolve_include_path(layout, current_path)
        return normalize_path(posixpath.join(self.layouts, layout))

    async def fetch(self, path: str, context: ResolutionContext) -> str:
        content = context.resolve(path)
        if inspect.isawaitable(content):
            content = await content
        if content is None:
            raise MissingResourceError(path)
        return content

    def make_include(self, path: str, data: Dict[str, Any], context: ResolutionContext):
        """Build the `include(target, extra)` callable bound into a document's data."""

        async def include(target=None, extra=None):
            if not target:
                return error_marker(TemplateError('include requires a path'))
            target = str(target)
            target_path = self.resolve_include_path(target, path)
            # a bare name also refers to the document of that name when it is already being resolved
            if target_path in context.stack or (
                    not target.startswith(('/', './', '../')) and normalize_path(target) in context.stack):
                logger.warning(f"Cyclic include of {target_path} in {path}")
                return error_marker(CyclicDependencyError())
            try:
                source = await self.fetch(target_path, context)
            except Exception as e:
                logger.warning(f"Include {target_path} in {path} failed: {e}")
                return error_marker(e)
            return await self.process(source, target_path, merge_data(data, extra), context.push(target_path))

        return include

    async def process(self, content: str, path: str, data: Optional[Dict[str, Any]] = None,
                      context: Optional[ResolutionContext] = None) -> str:
        """
        Resolve one document.

        Without a context a new one is started with `path` on its stack;
        recursive calls pass the context extended with the child path.
        """
        path = normalize_path(path)
        if context is None:
            context = self.create_context(path)

        metadata, body = extract(content)
        merged = merge_data(data, metadata)
        merged['include'] = self.make_include(path, merged, context)

        preprocessor = select_preprocessor(path, list(context.preprocessors))
        if preprocessor is not None:
            try:
                body = await preprocessor.process(body, merged)
            except Exception as e:
                logger.error(f"Preprocessor {preprocessor.name} failed for {path}: {e}")
                return error_marker(e)

        rendered = await render(body, merged, context.filters)

        layout = metadata.get('layout')
        if not layout:
            return rendered

        layout_path = self.resolve_layout_path(str(layout), path, context)
        if layout_path in context.stack:
            logger.warning(f"Cyclic layout {layout_path} for {path}")
            return error_marker(CyclicDependencyError())
        try:
            layout_source = await self.fetch(layout_path, context)
        except Exception as e:
            logger.error(f"Layout {layout_path} for {path} failed: {e}")
            return error_marker(e)

        layout_data = merge_data(merged, {'content': Markup(rendered)})
        return await self.process(layout_source, layout_path, layout_data, context.push(layout_path))


async def process_template_file(content: str, file_path: str, data: Optional[Dict[str, Any]] = None,
                                config: Optional[Dict[str, Any]] = None) -> str:
    """
    Resolve a single document.

    `config` may hold `resolve`, `filters`, `preprocessors`, `includes` and
    `layouts`; `resolve` defaults to reading files below the working directory.
    """
    config = config or {}
    processor = TemplateProcessor(
        resolve=config.get('resolve') or FileResolver('.'),
        filters=config.get('filters'),
        preprocessors=config.get('preprocessors'),
        includes=config.get('includes', '_includes'),
        layouts=config.get('layouts', '_layouts'),
    )
    return await processor.process(content, file_path, data)


class InfoFilter(logging.Filter):
    """Filter to allow only build summaries and problems on the console."""
    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        allowed_messages = [
            "Site build completed in",
            "Total files rendered:",
            "Total files copied:",
            "Total files failed:",
        ]
        return any(msg in record.getMessage() for msg in allowed_messages)


class Tessera:
    """Builds every document below an input directory into an output directory."""

    MINIFIERS = {
        '.css': csscompressor.compress,
        '.js': rjsmin.jsmin,
    }

    def __init__(self, input_dir='src', output_dir='dist', includes='_includes', layouts='_layouts',
                 data=None, data_file=None, minify=False, markdown_engine='mistune', filters=None, log_dir=None):
        if not os.path.isdir(input_dir):
            raise FileNotFoundError(f"Input directory not found: {input_dir}")
        self.input_dir = input_dir
        self.output_dir = output_dir
        self.minify = minify
        self.log_dir = log_dir
        self.files_rendered = 0
        self.files_copied = 0
        self.files_failed = 0

        self.setup_logging()

        self.global_data = dict(data or {})
        if data_file:
            self.global_data.update(self.load_data_file(data_file))

        self.preprocessors = [
            HtmlPreprocessor(),
            CssPreprocessor(),
            MarkdownPreprocessor(markdown_engine),
            JinjaPreprocessor(),
        ]
        self.processor = TemplateProcessor(
            resolve=FileResolver(input_dir),
            filters=filters,
            preprocessors=self.preprocessors,
            includes=includes,
            layouts=layouts,
        )

    def setup_logging(self):
        """Set up logging configuration."""
        self.logger = logger
        self.logger.setLevel(logging.DEBUG if self.log_dir else logging.INFO)

        if not self.logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.addFilter(InfoFilter())
            console_handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(console_handler)

            if self.log_dir:
                os.makedirs(self.log_dir, exist_ok=True)
                log_filename = datetime.now().strftime('tessera_%Y-%m-%d_%H-%M-%S.log')
                file_handler = logging.FileHandler(os.path.join(self.log_dir, log_filename))
                file_handler.setLevel(logging.DEBUG)
                file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
                self.logger.addHandler(file_handler)

    def load_data_file(self, file_path):
        """Load global template data from a YAML or JSON file."""
        ext = os.path.splitext(file_path)[1].lower()
        with open(file_path, 'r', encoding='utf-8') as f:
            if ext in ('.yml', '.yaml'):
                loaded = yaml.safe_load(f) or {}
            elif ext == '.json':
                loaded = json.load(f)
            else:
                raise ValueError(f"Unsupported data file format: {ext}")
        if not isinstance(loaded, dict):
            raise ValueError(f"Data file {file_path} must contain a mapping")
        return loaded

    def collect_sources(self):
        """Relative paths of all buildable files; `_` and `.` prefixed entries are skipped."""
        sources = []
        for root, dirs, files in os.walk(self.input_dir):
            dirs[:] = sorted(d for d in dirs if not d.startswith(('_', '.')))
            for name in sorted(files):
                if name.startswith(('_', '.')):
                    continue
                rel_path = os.path.relpath(os.path.join(root, name), self.input_dir)
                sources.append(rel_path.replace(os.sep, '/'))
        return sources

    def output_path_for(self, rel_path):
        base = posixpath.splitext(rel_path)[0]
        return base + get_output_file_extension(rel_path, self.preprocessors)

    def minify_output(self, text, extension):
        minifier = self.MINIFIERS.get(extension)
        return minifier(text) if self.minify and minifier else text

    async def build_file(self, rel_path):
        """Render one source file into the output directory."""
        source_path = os.path.join(self.input_dir, rel_path)
        try:
            with open(source_path, 'rb') as f:
                raw = f.read()
            try:
                text = raw.decode('utf-8')
            except UnicodeDecodeError:
                dest_path = os.path.join(self.output_dir, rel_path)
                os.makedirs(os.path.dirname(dest_path), exist_ok=True)
                shutil.copy2(source_path, dest_path)
                self.files_copied += 1
                self.logger.debug(f"Copied binary file: {rel_path}")
                return

            out_rel = self.output_path_for(rel_path)
            page_data = merge_data(self.global_data, {'page': {'path': rel_path, 'url': '/' + out_rel}})
            result = await self.processor.process(text, rel_path, page_data)
            result = self.minify_output(result, posixpath.splitext(out_rel)[1])

            dest_path = os.path.join(self.output_dir, out_rel)
            os.makedirs(os.path.dirname(dest_path), exist_ok=True)
            with open(dest_path, 'w', encoding='utf-8', newline='') as f:
                f.write(result)
            self.files_rendered += 1
            self.logger.debug(f"Generated {out_rel} from {rel_path}")
        except (IOError, OSError, PermissionError) as e:
            self.files_failed += 1
            self.logger.error(f"Failed to build {rel_path}: {e}")

    async def build_async(self):
        os.makedirs(self.output_dir, exist_ok=True)
        await asyncio.gather(*(self.build_file(rel_path) for rel_path in self.collect_sources()))

    def build(self):
        """Build the whole site and log a summary."""
        start_time = time.time()
        asyncio.run(self.build_async())
        self.logger.info(f"Site build completed in {time.time() - start_time:.6f} seconds.")
        self.logger.info(f"Total files rendered: {self.files_rendered}")
        self.logger.info(f"Total files copied: {self.files_copied}")
        if self.files_failed:
            self.logger.info(f"Total files failed: {self.files_failed}")
