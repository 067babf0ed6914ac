"""Tests for the command-line interface."""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tessera_pkg import __version__
from tessera_pkg.cli import STARTER_FILES, build_parser, create_starter_structure, main


class TestCli:
    """Test cases for the tessera command."""

    def test_parser_options(self):
        args = build_parser().parse_args(['--input', 'pages', '--minify', '--markdown-engine', 'markdown'])
        assert args.input == 'pages'
        assert args.minify is True
        assert args.markdown_engine == 'markdown'
        assert args.output is None

    def test_minify_defaults_to_unset(self):
        assert build_parser().parse_args([]).minify is None

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--version'])
        assert __version__ in capsys.readouterr().out

    def test_create_starter_structure_keeps_existing_files(self, temp_dir):
        index = Path(temp_dir, 'src', 'index.md')
        index.parent.mkdir(parents=True)
        index.write_text('mine')
        create_starter_structure(temp_dir)
        assert index.read_text() == 'mine'
        for rel_path in STARTER_FILES:
            assert Path(temp_dir, rel_path).exists()

    def test_init_then_build(self, temp_dir, monkeypatch):
        """Test that the starter site builds out of the box."""
        monkeypatch.chdir(temp_dir)
        main(['--init', 'yml'])
        assert Path(temp_dir, 'tessera.yml').exists()

        main([])
        html = Path(temp_dir, 'dist', 'index.html').read_text()
        assert '<title>Welcome | My Tessera Site</title>' in html
        assert '<h1>Welcome</h1>' in html
        assert 'Jan 01, 2025' in html
        assert '<aside class="note">Includes live in src/_includes.</aside>' in html
        assert Path(temp_dir, 'dist', 'about.html').exists()

    def test_arguments_override_config(self, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)
        main(['--init', 'yml'])
        main(['--output', 'public'])
        assert Path(temp_dir, 'public', 'index.html').exists()
        assert not Path(temp_dir, 'dist').exists()

    def test_minify_from_config_applies(self, temp_dir, monkeypatch):
        """Test that minify: true in the config is not reset by the CLI defaults."""
        monkeypatch.chdir(temp_dir)
        main(['--init', 'yml'])
        config = Path(temp_dir, 'tessera.yml')
        config.write_text(config.read_text().replace('minify: false', 'minify: true'))
        Path(temp_dir, 'src', 'site.css').write_text('body {\n  color: red;\n}\n')

        main([])
        assert Path(temp_dir, 'dist', 'site.css').read_text() == 'body{color:red}'

    def test_missing_input_exits(self, temp_dir, monkeypatch, capsys):
        monkeypatch.chdir(temp_dir)
        with pytest.raises(SystemExit) as excinfo:
            main(['--input', 'nope'])
        assert excinfo.value.code == 1
        assert 'Input directory not found' in capsys.readouterr().err
