"""Test configuration and fixtures for Inkwell tests."""

import logging
import pytest
import tempfile
import shutil
from pathlib import Path
from unittest.mock import Mock

from inkwell_pkg.document import find_all
from inkwell_pkg.plugins import Plugin


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def mock_content_dir(temp_dir):
    """Create a posts directory with a good post, an undated post and a broken one."""
    content_dir = Path(temp_dir) / 'content' / 'posts'
    content_dir.mkdir(parents=True)

    (content_dir / 'hello.mdx').write_text("""---
title: Hi
description: A first post
date: 2024-01-01
tags: [intro, meta]
imageUrl: https://cdn.example.org/cover.png
---

# Hello

World
""", encoding='utf-8')

    (content_dir / 'undated.md').write_text("""---
title: No date here
---

Just text.
""", encoding='utf-8')

    (content_dir / 'broken.md').write_text("""---
title: Broken
date: 2024-02-01
---

```python
print("never closed")
""", encoding='utf-8')

    # not a post
    (content_dir / 'notes.txt').write_text("ignore me", encoding='utf-8')

    return str(content_dir)


@pytest.fixture
def mock_output_dir(temp_dir):
    """Create a mock output directory."""
    output_dir = Path(temp_dir) / 'output'
    output_dir.mkdir()
    return str(output_dir)


@pytest.fixture
def mock_log_dir(temp_dir):
    log_dir = Path(temp_dir) / 'logs'
    log_dir.mkdir()
    return str(log_dir)


@pytest.fixture(autouse=True)
def reset_build_logger():
    """Drop handlers SiteBuilder attached so each test logs to its own directory."""
    yield
    logger = logging.getLogger('SiteBuilder')
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


@pytest.fixture
def mock_session():
    """Create a mock requests session."""
    session = Mock()
    session.timeout = 30
    session.headers = {}
    return session


@pytest.fixture
def sample_scope():
    return {'title': 'Hi', 'date': '2024-01-01', 'tags': [], 'imageUrl': None}


class RecordingPlugin(Plugin):
    """Plugin that records each run into a shared list."""

    def __init__(self, name, calls):
        super().__init__()
        self.name = name
        self.calls = calls

    def run(self, tree):
        self.calls.append(self.name)
        tree.setdefault('attrs', {})[self.name] = True
        return tree


class FailingPlugin(Plugin):
    name = 'boom'

    def run(self, tree):
        raise RuntimeError("kaboom")


class CamelCaseHeadingsPlugin(Plugin):
    """Rewrite heading text as camelCase, e.g. 'Hello World' -> 'helloWorld'."""

    name = 'camel-case-headings'

    def run(self, tree):
        for heading in find_all(tree, 'heading'):
            for child in heading.get('children', []):
                if child['type'] == 'text':
                    words = child['value'].split()
                    child['value'] = ''.join(
                        [words[0].lower()] + [word.capitalize() for word in words[1:]]
                    ) if words else ''
        return tree


@pytest.fixture
def recording_plugin():
    return RecordingPlugin


@pytest.fixture
def failing_plugin():
    return FailingPlugin


@pytest.fixture
def camel_case_plugin():
    return CamelCaseHeadingsPlugin
