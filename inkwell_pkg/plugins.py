"""
Transformation plugins for the content pipeline.

A plugin has a ``name``, an optional tuple of mistune ``syntax`` extensions
it needs during the base parse, and a ``run(tree)`` method that mutates
the document tree (or returns a replacement root). Plugins keep no state
between runs; anything a run needs is created inside ``run``.
"""

import json
from typing import Any, Dict, List, Mapping, Sequence, Tuple
from urllib.parse import urlparse

import emoji

from .document import find_all, text_content, walk
from .utils import GithubSlugger


class Plugin:
    """Base class for transformation plugins."""

    name = 'plugin'
    syntax = ()

    def __init__(self, **options):
        self.options = options

    def run(self, tree):
        raise NotImplementedError

    def identity(self):
        """Stable description used for cache keys."""
        return f"{self.name}:{json.dumps(self.options, sort_keys=True, default=str)}"

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class A11yEmojiPlugin(Plugin):
    """Wrap emoji in labelled nodes so screen readers can announce them."""

    name = 'a11y-emoji'

    def run(self, tree):
        for node, _ in list(walk(tree)):
            children = node.get('children')
            if not children or not any(child['type'] == 'text' for child in children):
                continue
            node['children'] = self._split_children(children)
        return tree

    def _split_children(self, children):
        result = []
        for child in children:
            found = emoji.emoji_list(child['value']) if child['type'] == 'text' else []
            if not found:
                result.append(child)
                continue
            position = 0
            value = child['value']
            for match in found:
                if match['match_start'] > position:
                    result.append({'type': 'text', 'value': value[position:match['match_start']]})
                result.append({
                    'type': 'emoji',
                    'value': match['emoji'],
                    'attrs': {'label': emoji_label(match['emoji'])},
                })
                position = match['match_end']
            if position < len(value):
                result.append({'type': 'text', 'value': value[position:]})
        return result


def emoji_label(value):
    """Spoken name of an emoji, e.g. ``red heart`` for ``\\u2764\\ufe0f``."""
    name = emoji.demojize(value, delimiters=('', ''))
    if name == value:
        return 'emoji'
    return name.replace('_', ' ')


class BreaksPlugin(Plugin):
    """Turn soft line breaks into hard ones."""

    name = 'breaks'

    def run(self, tree):
        for node, _ in walk(tree):
            if node['type'] == 'softbreak':
                node['type'] = 'linebreak'
        return tree


class GfmPlugin(Plugin):
    """GitHub-flavored Markdown: tables, strikethrough, task lists, autolinks."""

    name = 'gfm'
    syntax = ('table', 'strikethrough', 'task_lists', 'url')

    def run(self, tree):
        """No-op: these extensions take effect through ``syntax`` at parse time."""
        return tree


class FootnotesPlugin(Plugin):
    """Footnote references and definitions, with stable anchor ids."""

    name = 'footnotes'
    syntax = ('footnotes',)

    def run(self, tree):
        for node, _ in walk(tree):
            attrs = node.setdefault('attrs', {}) if node['type'] in ('footnote_ref', 'footnote_item') else None
            if attrs is None:
                continue
            key = node.get('value') if node['type'] == 'footnote_ref' else attrs.get('key')
            key = str(key if key is not None else attrs.get('index'))
            attrs['id'] = f"fnref-{key}" if node['type'] == 'footnote_ref' else f"fn-{key}"
            attrs['target'] = f"fn-{key}" if node['type'] == 'footnote_ref' else f"fnref-{key}"
        return tree


class ExternalLinksPlugin(Plugin):
    """Open links to other sites in a new tab and mark them nofollow."""

    name = 'external-links'

    DEFAULT_TARGET = '_blank'
    DEFAULT_REL = ('nofollow', 'noopener', 'noreferrer')
    DEFAULT_PROTOCOLS = ('http', 'https')

    def __init__(self, target=DEFAULT_TARGET, rel=DEFAULT_REL, protocols=DEFAULT_PROTOCOLS, site_hosts=()):
        super().__init__(target=target, rel=list(rel) if not isinstance(rel, str) else rel,
                         protocols=list(protocols), site_hosts=sorted(site_hosts))
        self.target = target
        self.rel = rel if isinstance(rel, str) else ' '.join(rel)
        self.protocols = tuple(protocols)
        self.site_hosts = {host.lower() for host in site_hosts}

    def is_external(self, url):
        if not url:
            return False
        parsed = urlparse(url)
        if url.startswith('//'):
            host = parsed.hostname
        elif parsed.scheme.lower() in self.protocols and parsed.netloc:
            host = parsed.hostname
        else:
            return False
        host = (host or '').lower()
        return not any(host == site or host.endswith('.' + site) for site in self.site_hosts)

    def run(self, tree):
        for node in find_all(tree, 'link'):
            attrs = node.setdefault('attrs', {})
            if not self.is_external(attrs.get('url')):
                continue
            if self.target:
                attrs['target'] = self.target
            if self.rel:
                attrs['rel'] = self.rel
        return tree


class SlugPlugin(Plugin):
    """Give every heading an id derived from its text."""

    name = 'slug'

    def run(self, tree):
        slugger = GithubSlugger()
        headings = find_all(tree, 'heading')
        for heading in headings:
            existing = heading.get('attrs', {}).get('id')
            if existing:
                slugger.reserve(existing)
        for heading in headings:
            attrs = heading.setdefault('attrs', {})
            if not attrs.get('id'):
                attrs['id'] = slugger.slug(text_content(heading))
        return tree


class SectionizePlugin(Plugin):
    """Wrap each heading and the content under it in a section node."""

    name = 'sectionize'

    def run(self, tree):
        tree['children'] = sectionize(tree.get('children', []))
        return tree


def sectionize(nodes):
    result = []
    stack = []  # (depth, section) pairs, shallowest first
    for node in nodes:
        if node['type'] == 'heading':
            depth = node.get('attrs', {}).get('level', 1)
            while stack and stack[-1][0] >= depth:
                stack.pop()
            section = {'type': 'section', 'attrs': {'depth': depth}, 'children': [node]}
            (stack[-1][1]['children'] if stack else result).append(section)
            stack.append((depth, section))
        elif node['type'] == 'footnotes':
            stack = []
            result.append(node)
        else:
            (stack[-1][1]['children'] if stack else result).append(node)
    return result


PLUGINS = {
    plugin.name: plugin
    for plugin in (
        A11yEmojiPlugin,
        BreaksPlugin,
        GfmPlugin,
        FootnotesPlugin,
        ExternalLinksPlugin,
        SlugPlugin,
        SectionizePlugin,
    )
}

DEFAULT_PLUGINS = ['a11y-emoji', 'breaks', 'gfm', 'footnotes', 'external-links', 'slug', 'sectionize']


def register_plugin(plugin_class):
    """Make a Plugin subclass available by name to resolve_plugins."""
    if not (isinstance(plugin_class, type) and issubclass(plugin_class, Plugin)):
        raise TypeError("Only Plugin subclasses can be registered")
    PLUGINS[plugin_class.name] = plugin_class
    return plugin_class


def resolve_plugins(specs=None, site_hosts=()) -> Tuple[Plugin, ...]:
    """Build the ordered plugin tuple for a pipeline.

    Each spec is a plugin name, a one-item ``{name: options}`` mapping, or
    an already constructed Plugin. ``site_hosts`` is handed to the
    external-links plugin unless its options name their own.
    """
    if specs is None:
        specs = DEFAULT_PLUGINS
    plugins: List[Plugin] = []
    for spec in specs:
        if isinstance(spec, Plugin):
            plugins.append(spec)
            continue
        name, options = _split_spec(spec)
        plugin_class = PLUGINS.get(name)
        if plugin_class is None:
            raise ValueError(f"Unknown plugin: {name}")
        if plugin_class is ExternalLinksPlugin and site_hosts and 'site_hosts' not in options:
            options = dict(options, site_hosts=list(site_hosts))
        plugins.append(plugin_class(**options))
    return tuple(plugins)


def _split_spec(spec) -> Tuple[str, Dict[str, Any]]:
    if isinstance(spec, str):
        return spec, {}
    if isinstance(spec, Mapping) and len(spec) == 1:
        name, options = next(iter(spec.items()))
        return name, dict(options or {})
    raise ValueError(f"Invalid plugin spec: {spec!r}")


def syntax_for(plugins: Sequence[Plugin]) -> Tuple[str, ...]:
    """Parser extensions required by a plugin list, in first-seen order."""
    syntax = []
    for plugin in plugins:
        for name in getattr(plugin, 'syntax', ()):
            if name not in syntax:
                syntax.append(name)
    return tuple(syntax)
