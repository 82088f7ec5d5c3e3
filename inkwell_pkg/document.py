"""
Document types shared by the parser, the transformer and the renderer.

A document tree is made of plain dicts so it can be serialized to JSON
without any custom encoding:

    {"type": "root", "children": [
        {"type": "heading", "attrs": {"level": 1, "id": "hello"},
         "children": [{"type": "text", "value": "Hello"}]},
    ]}
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

FORMAT_NAME = 'inkwell-document'
FORMAT_VERSION = 1

CONTENT_KINDS = ('markdown', 'mdx')

# Node types whose text is held in "value" rather than in children.
LEAF_TEXT_TYPES = ('text', 'codespan', 'emoji')


@dataclass(frozen=True)
class DocumentSource:
    """Raw, unparsed text of one post plus its content kind."""

    text: str
    kind: str = 'markdown'

    def __post_init__(self):
        if self.text is None:
            raise ValueError("Document source text must not be None")
        if not isinstance(self.text, str):
            raise TypeError(f"Document source text must be str, not {type(self.text).__name__}")
        if self.kind not in CONTENT_KINDS:
            raise ValueError(f"Unsupported content kind: {self.kind}")

    @classmethod
    def from_filename(cls, text, filename):
        """Build a source whose kind follows the file extension."""
        kind = 'mdx' if filename.lower().endswith('.mdx') else 'markdown'
        return cls(text, kind)


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} cannot be embedded in a document")


def encode(payload):
    """Encode a payload to compact, key-order-preserving JSON."""
    return json.dumps(payload, ensure_ascii=False, separators=(',', ':'), default=_json_default)


@dataclass(frozen=True)
class SerializedDocument:
    """Self-contained, pre-parsed output of the content pipeline.

    ``compiled_source`` is everything a renderer needs. ``scope`` is the
    embedded metadata as decoded from it, so dates come back as ISO strings
    and a hydrated document compares equal to the original.
    """

    compiled_source: str
    scope: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, tree, scope, kind='markdown'):
        payload = {
            'format': FORMAT_NAME,
            'version': FORMAT_VERSION,
            'kind': kind,
            'tree': tree,
            'scope': dict(scope),
        }
        compiled_source = encode(payload)
        return cls(compiled_source=compiled_source, scope=json.loads(compiled_source)['scope'])

    @classmethod
    def from_json(cls, compiled_source):
        """Hydrate a document from its compiled source alone."""
        payload = json.loads(compiled_source)
        if payload.get('format') != FORMAT_NAME:
            raise ValueError("Not a serialized Inkwell document")
        if payload.get('version') != FORMAT_VERSION:
            raise ValueError(f"Unsupported document version: {payload.get('version')}")
        return cls(compiled_source=compiled_source, scope=payload.get('scope') or {})

    def to_json(self):
        return self.compiled_source

    def to_dict(self):
        return json.loads(self.compiled_source)

    @property
    def kind(self):
        return self.to_dict()['kind']

    @property
    def tree(self):
        """A fresh copy of the document tree."""
        return self.to_dict()['tree']

    @property
    def is_empty(self):
        return not self.tree.get('children')


def walk(node, parent=None) -> Iterator[Tuple[Dict[str, Any], Optional[Dict[str, Any]]]]:
    """Yield (node, parent) pairs in document order, depth first."""
    yield node, parent
    for child in node.get('children', ()):
        yield from walk(child, node)


def find_all(tree, node_type) -> List[Dict[str, Any]]:
    return [node for node, _ in walk(tree) if node.get('type') == node_type]


def text_content(node):
    """Concatenate the visible text under a node."""
    if node.get('type') in LEAF_TEXT_TYPES:
        return node.get('value', '')
    if node.get('type') in ('linebreak', 'softbreak'):
        return ' '
    return ''.join(text_content(child) for child in node.get('children', ()))


def empty_tree():
    return {'type': 'root', 'children': []}


def ensure_scope(scope) -> Mapping[str, Any]:
    if scope is None:
        return {}
    if not isinstance(scope, Mapping):
        raise TypeError(f"Scope must be a mapping, not {type(scope).__name__}")
    return scope
