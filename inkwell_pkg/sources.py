"""
Content sources: where post records come from.

A source enumerates post identifiers and returns one record per
identifier with the fields ``title``, ``description``, ``date``,
``tags``, ``imageUrl`` and ``body``.
"""

import logging
import os
from datetime import date, datetime
from typing import Any, Dict, List
from urllib.parse import quote

import requests
import yaml

from .errors import InkwellError

RECORD_FIELDS = ('title', 'description', 'date', 'tags', 'imageUrl', 'body')

# front matter spellings accepted for imageUrl
IMAGE_URL_ALIASES = ('imageUrl', 'image_url', 'image', 'featured_image')


def check_identifier(identifier):
    """Raise InkwellError unless ``identifier`` is a single visible path component."""
    if (not identifier or os.path.basename(identifier) != identifier
            or '\\' in identifier or identifier.startswith('.')):
        raise InkwellError(f"Invalid post identifier: {identifier}")
    return identifier


def normalize_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce a raw record into the fields the build expects.

    Dates become ISO-8601 strings, missing optional fields become None or
    empty values, and the key order is always RECORD_FIELDS.
    """
    raw = raw or {}
    record_date = raw.get('date')
    if isinstance(record_date, (datetime, date)):
        record_date = record_date.isoformat()
    elif record_date is not None:
        record_date = str(record_date).strip() or None

    tags = raw.get('tags') or []
    if isinstance(tags, str):
        tags = [tag.strip() for tag in tags.split(',') if tag.strip()]

    image_url = None
    for key in IMAGE_URL_ALIASES:
        if raw.get(key):
            image_url = str(raw[key])
            break

    return {
        'title': str(raw.get('title') or ''),
        'description': str(raw.get('description') or ''),
        'date': record_date,
        'tags': [str(tag) for tag in tags],
        'imageUrl': image_url,
        'body': raw.get('body') or '',
    }


def split_front_matter(content):
    """Split a document into (metadata, body) on YAML front matter."""
    if not content.lstrip().startswith('---'):
        return {}, content
    parts = content.split('---', 2)
    if len(parts) < 3:
        return {}, content
    metadata = yaml.safe_load(parts[1]) or {}
    if not isinstance(metadata, dict):
        raise yaml.YAMLError("Front matter must be a mapping")
    return metadata, parts[2].lstrip('\n')


class FileContentSource:
    """Read posts from a directory of Markdown/MDX files with YAML front matter."""

    def __init__(self, content_dir, extensions=('.mdx', '.md')):
        self.content_dir = content_dir
        self.extensions = tuple(extensions)
        self.logger = logging.getLogger('ContentSource')

    def identifiers(self) -> List[str]:
        """Filenames minus their extension, sorted."""
        if not os.path.isdir(self.content_dir):
            self.logger.warning(f"Content directory not found: {self.content_dir}")
            return []
        found = set()
        for file in os.listdir(self.content_dir):
            stem, ext = os.path.splitext(file)
            if ext.lower() in self.extensions:
                found.add(stem)
        return sorted(found)

    def path_for(self, identifier):
        # first matching extension wins, in the configured order
        for ext in self.extensions:
            candidate = os.path.join(self.content_dir, identifier + ext)
            if os.path.isfile(candidate):
                return candidate
        return None

    def kind_for(self, identifier):
        path = self.path_for(identifier)
        return 'mdx' if path and path.lower().endswith('.mdx') else 'markdown'

    def get(self, identifier) -> Dict[str, Any]:
        check_identifier(identifier)
        file_path = self.path_for(identifier)
        if file_path is None:
            raise InkwellError(f"No post found for identifier: {identifier}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except (IOError, OSError, PermissionError) as e:
            self.logger.error(f"Failed to read post file {file_path}: {e}")
            raise InkwellError(f"Failed to read post file {file_path}: {e}") from e

        try:
            metadata, body = split_front_matter(content)
        except yaml.YAMLError as e:
            self.logger.error(f"Invalid YAML front matter in {file_path}: {e}")
            raise InkwellError(f"Invalid YAML front matter in {file_path}: {e}") from e

        metadata['body'] = body
        return normalize_record(metadata)


class HttpContentSource:
    """Fetch posts from a headless CMS that serves JSON.

    ``GET {api_url}/posts`` returns a list of filenames (or objects with a
    ``filename`` key); ``GET {api_url}/posts/{identifier}`` returns one
    record.
    """

    def __init__(self, api_url, session=None, timeout=30, extensions=('.mdx', '.md')):
        self.api_url = api_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.extensions = tuple(extensions)
        self.kinds = {}
        self.logger = logging.getLogger('ContentSource')

    def _get_json(self, url):
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Request to {url} failed: {e}")
            raise InkwellError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            self.logger.error(f"Invalid JSON from {url}: {e}")
            raise InkwellError(f"Invalid JSON from {url}: {e}") from e

    def _strip_extension(self, filename):
        stem, ext = os.path.splitext(filename)
        return stem if ext.lower() in self.extensions else filename

    def identifiers(self) -> List[str]:
        listing = self._get_json(f"{self.api_url}/posts") or []
        found = set()
        for entry in listing:
            filename = entry.get('filename') if isinstance(entry, dict) else entry
            if filename:
                filename = os.path.basename(str(filename))
                identifier = self._strip_extension(filename)
                try:
                    check_identifier(identifier)
                except InkwellError as e:
                    self.logger.warning(f"Skipping listing entry {entry!r}: {e}")
                    continue
                self.kinds[identifier] = 'markdown' if filename.lower().endswith('.md') else 'mdx'
                found.add(identifier)
        return sorted(found)

    def kind_for(self, identifier):
        return self.kinds.get(identifier, 'mdx')

    def get(self, identifier) -> Dict[str, Any]:
        check_identifier(identifier)
        data = self._get_json(f"{self.api_url}/posts/{quote(identifier, safe='')}")
        if not isinstance(data, dict):
            raise InkwellError(f"Unexpected record for {identifier}: {type(data).__name__}")
        return normalize_record(data)

    def close(self):
        try:
            self.session.close()
        except Exception as e:
            self.logger.debug(f"Error closing session: {e}")
