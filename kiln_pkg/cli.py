#!/usr/bin/env python3
"""
Command-line interface for Kiln - incremental static site builder.
"""

import os
import sys
import shutil
import argparse
from typing import Any, Dict, List, Optional

from . import __version__
from .builder import SiteBuilder
from .renderer import PACKAGE_TEMPLATES_DIR
from .reporting import setup_logging
from .settings import KilnSettings
from .watcher import watch

SAMPLE_POST = """---
title: "Welcome to Kiln"
date: 2026-01-05
category: general
tags:
  - kiln
  - getting started
description: "Your first post, built with Kiln."
---

# Welcome to Kiln

Kiln turns the markdown files under `content/` into a static site.

- Posts under `content/blog/` feed the blog pages, categories and tags
- Links to other markdown files, like [the about page](../about.md), are rewritten to their pages
- Run `kiln --watch` to rebuild as you edit
"""

SAMPLE_PAGE = """---
title: "About"
---

# About

This site is built with **Kiln**.
"""


def create_starter_structure(base_dir: Optional[str] = None) -> None:
    """Create the starter directories, templates and sample content."""
    current_dir = base_dir or os.getcwd()

    for directory in ['content/blog', 'static/css', 'templates']:
        dir_path = os.path.join(current_dir, directory)
        if os.path.exists(dir_path):
            print(f"Directory already exists: {directory}")
        else:
            os.makedirs(dir_path, exist_ok=True)
            print(f"Created directory: {directory}")

    template_dest = os.path.join(current_dir, 'templates')
    for template_file in sorted(os.listdir(PACKAGE_TEMPLATES_DIR)):
        if not template_file.endswith('.html'):
            continue
        dest_path = os.path.join(template_dest, template_file)
        if os.path.exists(dest_path):
            print(f"Template already exists: templates/{template_file}")
        else:
            shutil.copy2(os.path.join(PACKAGE_TEMPLATES_DIR, template_file), dest_path)
            print(f"Created template: templates/{template_file}")

    samples = {
        os.path.join('content', 'blog', 'welcome.md'): SAMPLE_POST,
        os.path.join('content', 'about.md'): SAMPLE_PAGE,
    }
    for rel_path, text in samples.items():
        path = os.path.join(current_dir, rel_path)
        if os.path.exists(path):
            print(f"Sample content already exists: {rel_path}")
        else:
            with open(path, 'w', encoding='utf-8') as f:
                f.write(text)
            print(f"Created sample content: {rel_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Kiln - incremental static site builder')
    parser.add_argument('--content', type=str,
                        help='Content directory containing markdown files and page components')
    parser.add_argument('--static', type=str,
                        help='Static assets directory, copied to <public>/static')
    parser.add_argument('--templates', type=str,
                        help='Templates directory')
    parser.add_argument('--build-dir', dest='build', type=str,
                        help='Directory for intermediate rendered pages')
    parser.add_argument('--public', type=str,
                        help='Output directory for the published site')
    parser.add_argument('--per-page', type=int,
                        help='Number of posts per blog page')
    parser.add_argument('--site-url', type=str,
                        help='Site URL for the sitemap')
    parser.add_argument('--render-drafts', action='store_true', default=None,
                        help='Publish drafts')
    parser.add_argument('--sitemap', dest='generate_sitemap', action='store_true', default=None,
                        help='Write sitemap.txt')
    parser.add_argument('--manifest', dest='generate_manifest', action='store_true', default=None,
                        help='Write site.webmanifest')
    parser.add_argument('--minify', action='store_true', default=None,
                        help='Minify page CSS and static CSS and JS')
    parser.add_argument('--workers', type=int,
                        help='Worker threads per build phase')
    parser.add_argument('--watch', action='store_true', default=None,
                        help='Watch for file changes and rebuild')
    parser.add_argument('--verbose', action='store_true',
                        help='Show all log messages')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file and starter structure')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def settings_from_args(args: argparse.Namespace, settings_loader: KilnSettings) -> Dict[str, Any]:
    """Config file settings overridden by the command-line arguments that were given."""
    settings_loader.load_settings()
    args_dict = {k: v for k, v in vars(args).items() if v is not None and k not in ('init', 'verbose')}
    return settings_loader.merge_with_args(args_dict)


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.init:
        settings_loader = KilnSettings()
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")

        print("\nCreating starter project structure...")
        create_starter_structure()

        print("\nYour new Kiln site is ready!")
        print("Edit the configuration file and content, then run 'kiln' to build your site.")
        return

    final_settings = settings_from_args(args, KilnSettings())

    try:
        setup_logging(verbose=args.verbose)
        builder = SiteBuilder(final_settings)
        if final_settings.get('watch'):
            watch(builder, [builder.content_dir, builder.static_dir, final_settings.get('templates')])
        else:
            builder.build()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
