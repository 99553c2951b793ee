#!/usr/bin/env python3
"""
Settings loader for Kiln.
Supports configuration from kiln.yml, kiln.yaml, or kiln.json files.
"""

import os
import copy
import json
import yaml
from typing import Dict, Any, Optional


class KilnSettings:
    """Load and manage Kiln configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'content': 'content',
        'static': 'static',
        'templates': 'templates',
        'build': '.kiln/build',
        'public': 'public',
        'entry_globs': ['**/*.md', '**/*.markdown', '**/*.html'],
        'render_drafts': False,
        'per_page': 10,
        'blog_slug': 'blog',
        'layouts': {'_': 'default.html'},
        'site_metadata': {},
        'generate_sitemap': False,
        'generate_manifest': False,
        'processing_plugins': [],
        'post_processing_plugins': [],
        'create_dynamic_pages': None,
        'derive_props': None,
        'image_exclude_class': 'cover',
        'image_formats': ['avif', 'webp'],
        'max_image_size': [2000, 1200],
        'tiny_image_size': [10, 10],
        'blur_up': False,
        'minify': False,
        'workers': None,
        'watch': False,
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['kiln.yml', 'kiln.yaml', 'kiln.json']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
        self.config_file_path = None

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from configuration file if it exists.

        Returns:
            Dictionary of configuration settings
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            try:
                loaded_settings = self._load_config_file(config_file)
                if loaded_settings:
                    if not isinstance(loaded_settings, dict):
                        raise ValueError("top level must be a mapping")
                    self.settings.update(loaded_settings)
                    print(f"Loaded configuration from: {os.path.relpath(config_file)}")
            except (ValueError, IOError, OSError) as e:
                print(f"Warning: Failed to load config file {config_file}: {e}")

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

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    return yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    return json.load(f) or {}
                else:
                    raise ValueError(f"Unsupported config file format: {file_ext}")
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")
        except PermissionError:
            raise PermissionError(f"Permission denied reading configuration file: {config_path}")

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        sample_config = {
            'content': 'content',
            'static': 'static',
            'templates': 'templates',
            'public': 'public',
            'blog_slug': 'blog',
            'per_page': 10,
            'render_drafts': False,
            'site_metadata': {
                'title': 'My Kiln Site',
                'site_url': 'https://example.com',
                'name': 'My Kiln Site',
                'short_name': 'Kiln',
                'description': 'Built with Kiln',
                'theme_color': '#ffffff',
                'background_color': '#ffffff',
                'display': 'standalone',
            },
            'generate_sitemap': True,
            'generate_manifest': True,
            'minify': False,
        }

        filename = f'kiln.{file_format}'
        config_path = os.path.join(self.config_dir, filename)

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                if file_format in ['yml', 'yaml']:
                    f.write("# Kiln Configuration File\n")
                    f.write("# Configure your site build here\n\n")
                    f.write("# Directories\n")
                    f.write("content: content\n")
                    f.write("static: static\n")
                    f.write("templates: templates\n")
                    f.write("public: public\n\n")
                    f.write("# Blog feed, categories and tags\n")
                    f.write("blog_slug: blog\n")
                    f.write("per_page: 10\n")
                    f.write("render_drafts: false\n\n")
                    f.write("# Forwarded to every template as 'site'; also used by the sitemap and manifest\n")
                    f.write("site_metadata:\n")
                    f.write("  title: My Kiln Site\n")
                    f.write("  site_url: https://example.com\n")
                    f.write("  name: My Kiln Site\n")
                    f.write("  short_name: Kiln\n")
                    f.write("  description: Built with Kiln\n")
                    f.write("  theme_color: '#ffffff'\n")
                    f.write("  background_color: '#ffffff'\n")
                    f.write("  display: standalone\n\n")
                    f.write("generate_sitemap: true\n")
                    f.write("generate_manifest: true\n\n")
                    f.write("# Extra processing stages, e.g.\n")
                    f.write("# processing_plugins:\n")
                    f.write("#   - use: mysite.plugins:shout\n")
                    f.write("#     priority: 60\n\n")
                    f.write("minify: false\n")
                elif file_format == 'json':
                    json.dump(sample_config, f, indent=2)
                else:
                    raise ValueError(f"Unsupported config file format: {file_format}")
        except PermissionError:
            raise PermissionError(f"Permission denied creating configuration file: {config_path}")
        except (IOError, OSError) as e:
            raise IOError(f"Error writing configuration file {config_path}: {e}")

        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of command-line arguments

        Returns:
            Merged configuration dictionary
        """
        merged = self.settings.copy()

        for key, value in args_dict.items():
            if value is None:
                continue
            if key == 'site_url':
                # the site URL lives with the rest of the site metadata
                merged['site_metadata'] = dict(merged.get('site_metadata') or {}, site_url=value)
            else:
                merged[key] = value

        return merged
