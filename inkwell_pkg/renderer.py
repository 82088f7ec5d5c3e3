"""
Rendering side: serialized documents to HTML pages.

``TreeRenderer`` turns a document tree into HTML without ever seeing the
original source. ``PageRenderer`` wraps that HTML in a Jinja2 page with
the SEO, Open Graph and structured data head tags.
"""

import json
import logging
import os
from typing import Mapping
from urllib.parse import quote

import mistune
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, TemplateSyntaxError, select_autoescape
from markupsafe import Markup
from mistune.core import BlockState
from mistune.plugins.footnotes import render_footnotes
from mistune.plugins.formatting import render_mark, render_strikethrough, render_subscript, render_superscript
from mistune.plugins.table import (
    render_table,
    render_table_body,
    render_table_cell,
    render_table_head,
    render_table_row,
)
from mistune.plugins.task_lists import render_task_list_item
from mistune.util import escape

from .document import SerializedDocument
from .utils import format_date

PACKAGE_TEMPLATES = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

PRISM_THEME_HREF = '/prism-theme.css'

# renderers mistune's syntax plugins would register on an HTML renderer
PLUGIN_RENDERERS = {
    'footnotes': render_footnotes,
    'mark': render_mark,
    'strikethrough': render_strikethrough,
    'subscript': render_subscript,
    'superscript': render_superscript,
    'table': render_table,
    'table_body': render_table_body,
    'table_cell': render_table_cell,
    'table_head': render_table_head,
    'table_row': render_table_row,
    'task_list_item': render_task_list_item,
}

MISSING = object()


class TreeRenderer(mistune.HTMLRenderer):
    """Render a document tree to an HTML fragment.

    Tree nodes are handed back to mistune as tokens, so everything the
    parser produces renders through mistune's own markup. Only the node
    types the plugins add, and the attributes they set, are handled here.
    """

    def __init__(self, scope=None):
        super().__init__()
        self.scope = scope or {}
        self.logger = logging.getLogger('PageRenderer')
        for name, method in PLUGIN_RENDERERS.items():
            self.register(name, method)

    def __call__(self, tree):
        tokens = [as_token(node) for node in tree.get('children', ())]
        return self.render_tokens(tokens, BlockState())

    def render_token(self, token, state):
        try:
            self._get_method(token['type'])
        except AttributeError:
            self.logger.debug(f"No renderer for node type '{token['type']}', rendering children")
            return self.render_tokens(token.get('children', []), state)
        return super().render_token(token, state)

    def emoji(self, text, label='emoji'):
        return f'<span role="img" aria-label="{escape(label)}">{text}</span>'

    def expression(self, name):
        value = lookup(self.scope, name)
        if value is MISSING:
            self.logger.warning(f"Expression '{{{name}}}' is not defined in the document scope")
            return ''
        if value is None:
            return ''
        if isinstance(value, (list, tuple)):
            value = ', '.join(str(item) for item in value)
        return escape(str(value))

    def html(self, html):
        return html

    jsx = html

    def section(self, text, depth=None):
        return '<section>\n' + text + '</section>\n'

    def link(self, text, url, title=None, target=None, rel=None):
        html = super().link(text, url, title)
        extra = ''.join(f' {name}="{escape(value)}"' for name, value in (('target', target), ('rel', rel)) if value)
        # the first '>' closes the opening tag; href and title are escaped
        return html.replace('>', extra + '>', 1)

    def block_code(self, code, info=None):
        language = (info or '').split()
        code = escape(code)
        if language:
            language = escape(language[0])
            return f'<pre class="language-{language}"><code class="language-{language}">{code}</code></pre>\n'
        return '<pre style="white-space: pre-wrap;"><code>{}</code></pre>\n'.format(code)

    def footnote_ref(self, key, **attrs):
        index = attrs.get('index', key)
        ref_id = attrs.get('id') or f'fnref-{index}'
        target = attrs.get('target') or f'fn-{index}'
        return f'<sup class="footnote-ref" id="{escape(ref_id)}"><a href="#{escape(target)}">{index}</a></sup>'

    def footnote_item(self, text, **attrs):
        index = attrs.get('index')
        item_id = attrs.get('id') or f'fn-{index}'
        target = attrs.get('target') or f'fnref-{index}'
        back = f'<a href="#{escape(target)}" class="footnote">&#8617;</a>'
        text = text.rstrip()
        if text.endswith('</p>'):
            text = text[:-4] + back + '</p>'
        else:
            text += back
        return f'<li id="{escape(item_id)}">' + text + '</li>\n'


def as_token(node):
    """Map a tree node back to the mistune token it came from."""
    token = {'type': node['type']}
    if 'value' in node:
        token['raw'] = node['value']
    if node.get('attrs'):
        token['attrs'] = node['attrs']
    if 'children' in node:
        token['children'] = [as_token(child) for child in node['children']]
    return token


def lookup(scope, name):
    value = scope
    for part in name.split('.'):
        if not isinstance(value, Mapping) or part not in value:
            return MISSING
        value = value[part]
    return value

class HeadTags:
    """Extra tags for a page's <head>, each attached at most once."""

    def __init__(self):
        self._tags = {}

    def attach_once(self, data_id, tag):
        """Attach ``tag`` under ``data_id`` unless it is already there."""
        if data_id in self._tags:
            return False
        self._tags[data_id] = tag
        return True

    def __contains__(self, data_id):
        return data_id in self._tags

    def __len__(self):
        return len(self._tags)

    def render(self):
        return Markup('\n'.join(self._tags.values()))


def prism_theme_tags(href=PRISM_THEME_HREF):
    """Non-blocking stylesheet link for code highlighting, with a noscript fallback."""
    href = escape(href)
    return (
        f'<link data-id="prism-theme" rel="stylesheet" href="{href}" media="print" '
        f'onload="this.media=\'all\'; this.onload=null;">\n'
        f'<noscript><link rel="stylesheet" href="{href}"></noscript>'
    )


def share_links(title, url):
    encoded_url = quote(url or '', safe='')
    encoded_title = quote(title or '', safe='')
    return {
        'twitter': f"https://twitter.com/intent/tweet?url={encoded_url}&text={encoded_title}",
        'linkedin': f"https://www.linkedin.com/sharing/share-offsite/?url={encoded_url}",
        'facebook': f"https://www.facebook.com/sharer/sharer.php?u={encoded_url}",
    }


def structured_data(meta, url, site_title=None):
    data = {
        '@context': 'https://schema.org',
        '@type': 'BlogPosting',
        'headline': meta.get('title') or '',
        'description': meta.get('description') or '',
        'datePublished': meta.get('date') or '',
        'keywords': ', '.join(meta.get('tags') or []),
        'mainEntityOfPage': {'@type': 'WebPage', '@id': url},
    }
    if meta.get('imageUrl'):
        data['image'] = [meta['imageUrl']]
    if site_title:
        data['publisher'] = {'@type': 'Organization', 'name': site_title}
    # keep "</script>" out of the inline JSON
    return json.dumps(data, ensure_ascii=False).replace('</', '<\\/')


class PageRenderer:
    """Render post pages and the 404 page through Jinja2 templates."""

    def __init__(self, templates_dir=None, site_url=None, site_title=None, blog_slug='blog'):
        self.templates_dir = templates_dir or PACKAGE_TEMPLATES
        self.site_url = (site_url or '').rstrip('/')
        self.site_title = site_title
        self.blog_slug = blog_slug
        self.logger = logging.getLogger('PageRenderer')
        loaders = [self.templates_dir]
        if self.templates_dir != PACKAGE_TEMPLATES:
            loaders.append(PACKAGE_TEMPLATES)
        self.env = Environment(loader=FileSystemLoader(loaders), autoescape=select_autoescape(['html']))

    def render_content(self, document: SerializedDocument):
        """HTML for a serialized document's body."""
        return TreeRenderer(document.scope)(document.tree)

    def post_url(self, slug):
        return f"{self.site_url}/{self.blog_slug}/{slug}/"

    def render_post(self, slug, document, read_time, head=None):
        """Render a full post page.

        Metadata comes from the scope embedded in ``document``; its date
        must already have been checked by the caller.
        """
        meta = dict(document.scope)
        url = self.post_url(slug)
        head = head or HeadTags()
        head.attach_once('prism-theme', prism_theme_tags())

        context = {
            'slug': slug,
            'url': url,
            'title': meta.get('title') or '',
            'description': meta.get('description') or '',
            'date': meta.get('date'),
            'formatted_date': format_date(meta.get('date')),
            'tags': meta.get('tags') or [],
            'image_url': meta.get('imageUrl'),
            'read_time': read_time,
            'content': Markup(self.render_content(document)),
            'head_tags': head.render(),
            'share': share_links(meta.get('title'), url),
            'structured_data': Markup(structured_data(meta, url, self.site_title)),
            'site_url': self.site_url,
            'site_title': self.site_title,
            'blog_slug': self.blog_slug,
        }
        return self.render_template('post.html', **context)

    def render_not_found(self):
        return self.render_template(
            '404.html',
            site_url=self.site_url,
            site_title=self.site_title,
            blog_slug=self.blog_slug,
        )

    def render_template(self, template_name, **context):
        """Render a Jinja2 template."""
        try:
            template = self.env.get_template(template_name)
            return template.render(**context)
        except (TemplateNotFound, TemplateSyntaxError) as e:
            self.logger.error(f"Template error: {e}")
            raise
