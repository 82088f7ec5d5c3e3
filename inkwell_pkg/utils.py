"""
Small pure helpers used around the content pipeline.

These take plain strings in and give plain strings or numbers out, so
they can be called from templates, the builder or the plugins alike.
"""

import math
import re
from datetime import date, datetime

DEFAULT_WORDS_PER_MINUTE = 200

DATE_FORMATS = ['%Y-%m-%dT%H:%M:%S', '%Y-%m-%d', '%b %d, %Y', '%B %d, %Y']

SLUG_STRIP_RE = re.compile(r'[^\w\- ]', re.UNICODE)


def get_read_time(text, words_per_minute=DEFAULT_WORDS_PER_MINUTE):
    """Estimated reading time of ``text`` in whole minutes."""
    if words_per_minute <= 0:
        raise ValueError("words_per_minute must be positive")
    words = len((text or '').split())
    return int(math.ceil(words / float(words_per_minute)))


def parse_date(value):
    """Parse a date string.

    Accepts datetime/date objects, ISO-8601 strings (with or without a
    timezone) and a few human formats. Returns None when the value is
    empty or cannot be understood.
    """
    if isinstance(value, datetime):
        return value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            pass
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
    return None


def format_date(value):
    """Format a date for display, e.g. 'January 01, 2024'."""
    date_obj = parse_date(value)
    if date_obj is None:
        raise ValueError(f"Unparseable date: {value!r}")
    return date_obj.strftime('%B %d, %Y')


def slugify(text):
    """GitHub-style slug of a heading's text (without de-duplication)."""
    return SLUG_STRIP_RE.sub('', text.lower()).replace(' ', '-')


class GithubSlugger:
    """Generate unique heading slugs the way GitHub does.

    The first "Intro" becomes ``intro``, the next ``intro-1`` and so on.
    One slugger is used per document.
    """

    def __init__(self):
        self.occurrences = {}

    def slug(self, text):
        original = slugify(text)
        result = original
        while result in self.occurrences:
            self.occurrences[original] += 1
            result = f"{original}-{self.occurrences[original]}"
        self.occurrences[result] = 0
        return result

    def reserve(self, slug):
        """Mark an existing id as taken."""
        self.occurrences.setdefault(slug, 0)

    def reset(self):
        self.occurrences = {}
