#!/usr/bin/env python3
"""
Settings loader for Tessera.
Supports configuration from tessera.yml, tessera.yaml, or tessera.json files.
"""

import os
import json
import logging
import yaml
from typing import Dict, Any, Optional

logger = logging.getLogger('Tessera.settings')


class TesseraSettings:
    """Load and manage Tessera configuration settings."""

    DEFAULT_SETTINGS = {
        'input': 'src',
        'output': 'dist',
        'includes': '_includes',
        'layouts': '_layouts',
        'data': None,
        'minify': False,
        'markdown_engine': 'mistune',
        'logs': None,
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['tessera.yml', 'tessera.yaml', 'tessera.json']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = self.DEFAULT_SETTINGS.copy()
        self.config_file_path = None

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from the first configuration file found.

        A file that cannot be read or parsed is reported and the defaults are kept.
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            try:
                loaded_settings = self._load_config_file(config_file)
                if loaded_settings:
                    unknown = set(loaded_settings) - set(self.DEFAULT_SETTINGS)
                    if unknown:
                        logger.warning(f"Ignoring unknown settings in {config_file}: {', '.join(sorted(unknown))}")
                    self.settings.update({k: v for k, v in loaded_settings.items() if k in self.DEFAULT_SETTINGS})
                    logger.info(f"Loaded configuration from: {os.path.relpath(config_file)}")
            except (ValueError, OSError) as e:
                logger.warning(f"Failed to load config file {config_file}: {e}")

        return self.settings.copy()

    def _find_config_file(self) -> Optional[str]:
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Raises:
            ValueError: for unsupported formats, invalid YAML/JSON, or a
                document that is not a mapping.
            OSError: if the file cannot be read.
        """
        file_ext = os.path.splitext(config_path)[1].lower()

        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                if file_ext in ['.yml', '.yaml']:
                    loaded = yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    loaded = json.load(f) or {}
                else:
                    raise ValueError(f"Unsupported config file format: {file_ext}")
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")

        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        return loaded

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        filename = f'tessera.{file_format}'
        config_path = os.path.join(self.config_dir, filename)

        with open(config_path, 'w', encoding='utf-8') as f:
            if file_format in ['yml', 'yaml']:
                f.write("# Tessera Configuration File\n\n")
                f.write("# Source and output directories\n")
                f.write("input: src\n")
                f.write("output: dist\n\n")
                f.write("# Roots for include() and layout lookups, relative to input\n")
                f.write("includes: _includes\n")
                f.write("layouts: _layouts\n\n")
                f.write("# YAML/JSON file with data available to every page\n")
                f.write("data: _data.yml\n\n")
                f.write("# Rendering\n")
                f.write("markdown_engine: mistune  # mistune or markdown\n")
                f.write("minify: false\n")
            elif file_format == 'json':
                sample = {k: v for k, v in self.DEFAULT_SETTINGS.items() if v is not None}
                sample['data'] = '_data.yml'
                json.dump(sample, f, indent=2)
            else:
                raise ValueError(f"Unsupported config file format: {file_format}")

        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.
        """
        merged = self.settings.copy()

        for key, value in args_dict.items():
            if value is None:
                continue
            merged[key] = value

        return merged
