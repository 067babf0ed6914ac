"""Test configuration and fixtures for Tessera tests."""

import json
import shutil
import tempfile
from pathlib import Path

import pytest
import yaml


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def make_resolver():
    """Build an async resolve callback backed by an in-memory file map."""
    def factory(files):
        async def resolve(path):
            return files.get(path.replace('\\', '/'))
        return resolve
    return factory


def build_frontmatter(body, data):
    """Prefix `body` with key/value frontmatter, each value JSON-encoded."""
    lines = '\n'.join(f"{key}: {json.dumps(value)}" for key, value in data.items())
    return f"---\n{lines}\n---\n{body}"


@pytest.fixture
def with_frontmatter():
    return build_frontmatter


@pytest.fixture
def with_json_frontmatter():
    def build(body, data):
        return f"---json\n{json.dumps(data)}\n---\n{body}"
    return build


@pytest.fixture
def site_dir(temp_dir):
    """Create a small source tree with a page, a layout, an include, css and an image."""
    src = Path(temp_dir) / 'src'
    (src / '_includes').mkdir(parents=True)
    (src / '_layouts').mkdir()
    (src / 'blog').mkdir()

    (src / 'index.md').write_text(build_frontmatter(
        '# {{ title }}\n\nWelcome to {{ site.name }}.\n',
        {'title': 'Home', 'layout': 'base'}
    ))
    (src / 'blog' / 'post.html').write_text(
        '<article>{{ include("byline.html", {author: "Lea"}) | safe }}</article>'
    )
    (src / '_includes' / 'byline.html').write_text('<p class="byline">by {{ author }}</p>')
    (src / '_layouts' / 'base.html').write_text(
        '<html><title>{{ title }}</title><body>{{ content }}</body></html>'
    )
    (src / 'style.css').write_text('@import "_reset.css";\nbody {\n  color: red;\n}\n')
    (src / '_reset.css').write_text('* { margin: 0; }\n')
    (src / 'logo.png').write_bytes(b'\x89PNG\r\n\x1a\n\x00\xff\xfe')
    (src / '_data.yml').write_text(yaml.dump({'site': {'name': 'Tessera Test'}}))

    return str(src)
