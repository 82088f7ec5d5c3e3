#!/usr/bin/env python3
"""
Settings loader for Inkwell.
Supports configuration from inkwell.yml, inkwell.yaml, or inkwell.json files.
"""

import os
import json
import yaml
from typing import Dict, Any, Optional

from .plugins import DEFAULT_PLUGINS, resolve_plugins

SAMPLE_HEADER = """\
# Inkwell Configuration File
# Posts come from `content`, or from a headless CMS when `api_url` is set.
# `plugins` run in the order listed.

"""

# settings a comma-separated command line value may set
LIST_SETTINGS = ('plugins', 'site_hosts')


class InkwellSettings:
    """Load, validate and merge Inkwell configuration settings."""

    DEFAULT_SETTINGS = {
        'output': 'output',
        'content': 'content/posts',
        'api_url': None,
        'templates': None,
        'site_url': None,
        'site_title': None,
        'blog_slug': 'blog',
        'plugins': list(DEFAULT_PLUGINS),
        'site_hosts': None,
        'words_per_minute': 200,
        'cache_dir': None,
        'workers': None,
    }

    SAMPLE_SETTINGS = {
        'site_url': 'https://example.com',
        'site_title': 'My Blog',
        'content': 'content/posts',
        'output': 'output',
        'blog_slug': 'blog',
        'plugins': list(DEFAULT_PLUGINS),
        'words_per_minute': 200,
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['inkwell.yml', 'inkwell.yaml', 'inkwell.json']

    def __init__(self, config_dir: str = None):
        self.config_dir = config_dir or os.getcwd()
        self.settings = dict(self.DEFAULT_SETTINGS, plugins=list(DEFAULT_PLUGINS))
        self.config_file_path = None

    def load_settings(self) -> Dict[str, Any]:
        """Apply the first config file found on top of the defaults.

        A file that cannot be read or parsed is reported and skipped, so
        the build falls back to the defaults.
        """
        self.config_file_path = self._find_config_file()
        if self.config_file_path:
            try:
                loaded = self._read(self.config_file_path)
                if loaded:
                    self.settings.update(loaded)
                    print(f"Loaded configuration from: {os.path.relpath(self.config_file_path)}")
            except (ValueError, IOError, OSError) as e:
                print(f"Warning: Failed to load config file {self.config_file_path}: {e}")
        return dict(self.settings)

    def _find_config_file(self) -> Optional[str]:
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _read(self, config_path):
        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                if config_path.endswith('.json'):
                    loaded = json.load(f)
                else:
                    loaded = yaml.safe_load(f)
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                raise ValueError(f"Invalid configuration file {config_path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError("Configuration must be a mapping")
        return loaded or {}

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """Write a sample config file to the config directory and return its path."""
        if file_format not in ('yml', 'yaml', 'json'):
            raise ValueError(f"Unsupported config file format: {file_format}")

        config_path = os.path.join(self.config_dir, f'inkwell.{file_format}')
        with open(config_path, 'w', encoding='utf-8') as f:
            if file_format == 'json':
                json.dump(self.SAMPLE_SETTINGS, f, indent=2)
            else:
                f.write(SAMPLE_HEADER)
                yaml.safe_dump(self.SAMPLE_SETTINGS, f, sort_keys=False, default_flow_style=False)
        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.
        The result is validated; invalid settings raise ValueError.
        """
        merged = dict(self.settings)
        for key, value in args_dict.items():
            if value is None:
                continue
            if key in LIST_SETTINGS and isinstance(value, str):
                value = [item.strip() for item in value.split(',') if item.strip()]
            merged[key] = value
        return self.validate(merged)

    @staticmethod
    def validate(settings: Dict[str, Any]) -> Dict[str, Any]:
        """Check a merged settings mapping and return it.

        Plugin specs are resolved once here so an unknown plugin name is
        reported before any post is built.
        """
        for key in LIST_SETTINGS:
            if settings.get(key) is not None and not isinstance(settings[key], list):
                raise ValueError(f"'{key}' must be a list")
        resolve_plugins(settings['plugins'], settings.get('site_hosts') or ())

        words_per_minute = settings.get('words_per_minute')
        if isinstance(words_per_minute, bool) or not isinstance(words_per_minute, int) or words_per_minute <= 0:
            raise ValueError(f"'words_per_minute' must be a positive integer, got {words_per_minute!r}")

        workers = settings.get('workers')
        if workers is not None and (isinstance(workers, bool) or not isinstance(workers, int) or workers <= 0):
            raise ValueError(f"'workers' must be a positive integer, got {workers!r}")

        blog_slug = settings.get('blog_slug')
        if not blog_slug or not isinstance(blog_slug, str) or '/' in blog_slug or blog_slug.startswith('.'):
            raise ValueError(f"'blog_slug' must be a single path segment, got {blog_slug!r}")
        return settings
