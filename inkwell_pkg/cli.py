#!/usr/bin/env python3
"""
Command-line interface for Inkwell.
"""

import os
import sys
import argparse
import time

from . import __version__
from .builder import SiteBuilder
from .errors import InkwellError
from .settings import InkwellSettings
from .sources import FileContentSource, HttpContentSource

SAMPLE_POST = """---
title: "Hello, Inkwell"
description: "The first post on a brand new blog."
date: 2024-01-01
tags:
  - meta
imageUrl: null
---

# Hello

Welcome to your new blog! :) This post was rendered by **Inkwell** 🚀

## Footnotes and links

Posts can link [elsewhere](https://example.org) and cite things.[^1]

[^1]: Like this footnote.
"""


def create_sample_content(content_dir):
    """Create a first post if the content directory is empty."""
    os.makedirs(content_dir, exist_ok=True)
    post_path = os.path.join(content_dir, 'hello-inkwell.mdx')
    if os.path.exists(post_path):
        print(f"Sample post already exists: {post_path}")
    else:
        with open(post_path, 'w', encoding='utf-8') as f:
            f.write(SAMPLE_POST)
        print(f"Created sample post: {post_path}")


def build_parser():
    parser = argparse.ArgumentParser(description='Inkwell - Markdown/MDX blog builder')
    parser.add_argument('--output', type=str,
                        help='Output directory for generated site')
    parser.add_argument('--content', type=str,
                        help='Directory containing .mdx/.md posts')
    parser.add_argument('--api-url', type=str, dest='api_url',
                        help='Headless CMS base URL to fetch posts from instead of --content')
    parser.add_argument('--templates', type=str,
                        help='Templates directory overriding the bundled templates')
    parser.add_argument('--site-url', type=str, dest='site_url',
                        help='Site URL for canonical and social links')
    parser.add_argument('--site-title', type=str, dest='site_title', help='Site title for metadata')
    parser.add_argument('--blog-slug', type=str, dest='blog_slug',
                        help="Custom slug for posts instead of 'blog'")
    parser.add_argument('--plugins', type=str,
                        help='Comma-separated, ordered list of content plugins')
    parser.add_argument('--words-per-minute', type=int, dest='words_per_minute',
                        help='Reading speed used for read time estimates')
    parser.add_argument('--cache-dir', type=str, dest='cache_dir',
                        help='Directory to cache transformed documents in')
    parser.add_argument('--workers', type=int,
                        help='Worker processes for large builds')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file and first post')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv=None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    # Handle init command
    if args.init:
        settings_loader = InkwellSettings()
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")
        create_sample_content(os.path.join(os.getcwd(), 'content', 'posts'))
        print("\nEdit the configuration file, then run 'inkwell' to build your blog.")
        return

    # Load settings from configuration file
    settings_loader = InkwellSettings()
    settings_loader.load_settings()

    # Command line arguments take precedence
    args_dict = {k: v for k, v in vars(args).items() if v is not None and k != 'init'}
    try:
        final_settings = settings_loader.merge_with_args(args_dict)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    output_dir = os.path.expanduser(final_settings['output'])

    overall_start_time = time.time()

    source = None
    try:
        if final_settings['api_url']:
            source = HttpContentSource(final_settings['api_url'])
        else:
            source = FileContentSource(os.path.expanduser(final_settings['content']))

        generator = SiteBuilder(
            source,
            output_dir=output_dir,
            plugins=final_settings['plugins'],
            site_url=final_settings['site_url'],
            site_title=final_settings['site_title'],
            blog_slug=final_settings['blog_slug'],
            templates_dir=final_settings['templates'],
            site_hosts=final_settings['site_hosts'],
            words_per_minute=final_settings['words_per_minute'],
            cache_dir=final_settings['cache_dir'],
            workers=final_settings['workers'],
        )

        generator.build()

        # Show build statistics
        total_time = time.time() - overall_start_time
        generator.logger.info(f"Site build completed in {total_time:.6f} seconds.")
        generator.logger.info(f"Total posts generated: {generator.posts_generated}")
        generator.logger.info(f"Total posts not found: {generator.posts_not_found}")
        generator.logger.info(f"Total posts failed: {generator.posts_failed}")

    except (InkwellError, ValueError, IOError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        if source is not None and final_settings['api_url']:
            source.close()

    if generator.failed:
        for result in generator.failed:
            print(f"Error: {result['identifier']}: {result['error']}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
