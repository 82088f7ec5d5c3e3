"""
The content pipeline: parse, apply plugins in order, serialize.
"""

import hashlib
import logging
from typing import Any, Mapping, Optional, Sequence

from .document import DocumentSource, SerializedDocument, encode, ensure_scope
from .errors import PluginError
from .parser import MarkdownParser
from .plugins import Plugin, syntax_for


class ContentTransformer:
    """Turn document sources into serialized documents.

    The plugin list is fixed when the transformer is created and applied
    strictly in order on every call. A transformer keeps no per-document
    state, so one instance can serve any number of documents.
    """

    def __init__(self, plugins: Optional[Sequence[Plugin]] = None):
        self.plugins = tuple(plugins or ())
        for index, plugin in enumerate(self.plugins):
            if not callable(getattr(plugin, 'run', None)):
                raise TypeError(f"Plugin at index {index} has no run() method: {plugin!r}")
        self.parser = MarkdownParser(syntax_for(self.plugins))
        self.logger = logging.getLogger('ContentTransformer')

    def transform(self, source, scope: Optional[Mapping[str, Any]] = None) -> SerializedDocument:
        """Transform one document.

        Raises ParseError for malformed source and PluginError when a
        plugin fails. Nothing is returned for a failed document.
        """
        if not isinstance(source, DocumentSource):
            source = DocumentSource(source)
        scope = ensure_scope(scope)

        tree = self.parser.parse(source)
        for index, plugin in enumerate(self.plugins):
            tree = self._apply(plugin, index, tree)

        document = SerializedDocument.create(tree, scope, kind=source.kind)
        self.logger.debug(f"Transformed document ({len(document.compiled_source)} bytes)")
        return document

    def _apply(self, plugin, index, tree):
        name = getattr(plugin, 'name', type(plugin).__name__)
        try:
            result = plugin.run(tree)
        except PluginError as e:
            self.logger.error(f"Plugin '{name}' failed at step {index}: {e.message}")
            raise PluginError(name, index, e.message) from e
        except Exception as e:
            self.logger.error(f"Plugin '{name}' failed at step {index}: {e}")
            raise PluginError(name, index, str(e)) from e

        if result is None:
            return tree
        if not isinstance(result, dict) or result.get('type') != 'root':
            raise PluginError(name, index, "run() must return the root node or None")
        return result

    def fingerprint(self, source, scope=None):
        """Cache key for a (source, scope) pair under this plugin list."""
        if not isinstance(source, DocumentSource):
            source = DocumentSource(source)
        digest = hashlib.sha256()
        digest.update(source.kind.encode('utf-8'))
        digest.update(b'\0')
        digest.update(source.text.encode('utf-8'))
        digest.update(b'\0')
        digest.update(encode(dict(ensure_scope(scope))).encode('utf-8'))
        for plugin in self.plugins:
            identity = plugin.identity() if hasattr(plugin, 'identity') else type(plugin).__name__
            digest.update(b'\0')
            digest.update(identity.encode('utf-8'))
        return digest.hexdigest()


def transform(source, scope=None, plugins=()):
    """Transform ``source`` with ``plugins`` and embed ``scope``."""
    return ContentTransformer(plugins).transform(source, scope)
