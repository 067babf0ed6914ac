#!/usr/bin/env python3
"""
Command-line interface for Tessera.
"""

import os
import sys
import argparse
from typing import Dict

from . import __version__
from .core import Tessera
from .errors import TemplateError
from .settings import TesseraSettings

STARTER_FILES: Dict[str, str] = {
    'src/index.md': """---
title: "Welcome"
layout: base
---
# {{ title }}

This page was built by Tessera on {{ site.built | date: "en-US" }}.

<html-include src="./about.html">
""",
    'src/about.html': """<section>
  <p>Edit <code>src/index.md</code> and run <code>tessera</code> again.</p>
  {{ include("note.html", {text: "Includes live in src/_includes."}) | safe }}
</section>
""",
    'src/_includes/note.html': '<aside class="note">{{ text }}</aside>\n',
    'src/_layouts/base.html': """<!DOCTYPE html>
<html>
<head>
  <title>{{ title }} | {{ site.title }}</title>
</head>
<body>
{{ content | safe }}
</body>
</html>
""",
    'src/_data.yml': 'site:\n  title: My Tessera Site\n  built: 2025-01-01\n',
}


def create_starter_structure(base_dir: str = None) -> None:
    """Create a starter source tree with a page, an include and a layout."""
    base_dir = base_dir or os.getcwd()

    for rel_path, content in STARTER_FILES.items():
        path = os.path.join(base_dir, rel_path)
        if os.path.exists(path):
            print(f"File already exists: {rel_path}")
            continue
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        print(f"Created: {rel_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Tessera - template resolver and site builder')
    parser.add_argument('--input', type=str,
                        help='Directory with the source documents')
    parser.add_argument('--output', type=str,
                        help='Output directory for resolved documents')
    parser.add_argument('--includes', type=str,
                        help='Root for include() lookups, relative to the input directory')
    parser.add_argument('--layouts', type=str,
                        help='Root for layout lookups, relative to the input directory')
    parser.add_argument('--data', type=str,
                        help='YAML or JSON file with data available to every document')
    parser.add_argument('--markdown-engine', type=str, choices=['mistune', 'markdown'],
                        help='Markdown converter to use')
    parser.add_argument('--minify', action='store_true', default=None,
                        help='Minify CSS and JS output')
    parser.add_argument('--logs', type=str,
                        help='Directory for debug log files')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file and starter sources')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv=None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.init:
        settings_loader = TesseraSettings()
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")
        create_starter_structure()
        print("\nRun 'tessera' to build the starter site into dist/.")
        return

    settings_loader = TesseraSettings()
    settings_loader.load_settings()
    args_dict = {k: v for k, v in vars(args).items() if v is not None and k != 'init'}
    final_settings = settings_loader.merge_with_args(args_dict)

    data_file = final_settings['data']
    if data_file and not os.path.isabs(data_file) and not os.path.exists(data_file):
        data_file = os.path.join(final_settings['input'], data_file)

    try:
        generator = Tessera(
            input_dir=os.path.expanduser(final_settings['input']),
            output_dir=os.path.expanduser(final_settings['output']),
            includes=final_settings['includes'],
            layouts=final_settings['layouts'],
            data_file=data_file,
            minify=final_settings['minify'],
            markdown_engine=final_settings['markdown_engine'],
            log_dir=final_settings['logs'],
        )
        generator.build()
    except (OSError, ValueError, TemplateError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
