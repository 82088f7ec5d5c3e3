"""
Inkwell - a Markdown/MDX blog builder.

Inkwell turns post bodies into self-contained, pre-parsed documents
through an ordered pipeline of plugins (emoji labels, line breaks, GFM,
footnotes, external links, heading slugs and sections), then renders
them into pages with SEO and social metadata using Jinja2 templates.
"""

__version__ = "1.0.0"

from .document import DocumentSource, SerializedDocument
from .errors import InkwellError, MissingRequiredField, ParseError, PluginError
from .plugins import DEFAULT_PLUGINS, Plugin, resolve_plugins
from .transformer import ContentTransformer, transform

__all__ = [
    'ContentTransformer',
    'DEFAULT_PLUGINS',
    'DocumentSource',
    'InkwellError',
    'MissingRequiredField',
    'ParseError',
    'Plugin',
    'PluginError',
    'SerializedDocument',
    'resolve_plugins',
    'transform',
]
