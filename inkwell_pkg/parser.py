"""
Base parse step: Markdown/MDX text to a document tree.

Parsing is delegated to mistune in AST mode. Its tokens are normalized
into the plain-dict tree described in ``inkwell_pkg.document``.
"""

import logging
import re

import mistune

from .document import DocumentSource, empty_tree
from .errors import ParseError

# mistune parser extensions a plugin may ask for
KNOWN_SYNTAX = ('table', 'strikethrough', 'task_lists', 'url', 'footnotes', 'mark', 'superscript', 'subscript')

# leading block quote and list item markers
CONTAINER_RE = re.compile(r' *(?:>|[-+*](?= |$)|\d{1,9}[.)](?= |$)) ?')
BLOCKQUOTE_RE = re.compile(r' {0,3}> ?')
FENCE_RE = re.compile(r'(`{3,}|~{3,})(.*)$')
INLINE_CODE_RE = re.compile(r'(`+)(?:.+?)\1')
# {name} or {name.attr} references to the document scope
EXPRESSION_RE = re.compile(r'\{\s*([A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*)\s*\}')
# stands in for an escaped "\{" while mistune parses
LITERAL_BRACE = '\ue000'
HTML_TYPES = ('block_html', 'inline_html')
RAW_TYPES = ('block_code', 'codespan', 'html', 'jsx')
LIST_ATTRS = ('tight', 'bullet')


class MarkdownParser:
    """Parse document sources with a fixed set of mistune syntax extensions."""

    def __init__(self, syntax=()):
        unknown = [name for name in syntax if name not in KNOWN_SYNTAX]
        if unknown:
            raise ValueError(f"Unknown syntax extension(s): {', '.join(unknown)}")
        # preserve first-seen order so equal syntax lists build equal parsers
        self.syntax = tuple(dict.fromkeys(syntax))
        self.logger = logging.getLogger('ContentTransformer')
        self._markdown = mistune.create_markdown(renderer='ast', plugins=list(self.syntax))

    def parse(self, source):
        """Parse a DocumentSource (or plain text) into a root node.

        In MDX sources, ``{name}`` references outside code become
        ``expression`` nodes, resolved against the scope when rendered.
        ``\\{`` keeps a literal brace.
        """
        if not isinstance(source, DocumentSource):
            source = DocumentSource(source)

        text = source.text
        check_fences(text)
        if source.kind == 'mdx':
            check_expressions(text)
            text = protect_escaped_braces(text)

        tree = empty_tree()
        if not text.strip():
            return tree

        tokens, _state = self._markdown.parse(text)
        tree['children'] = normalize_tokens(tokens, source.kind)
        self.logger.debug(f"Parsed {len(tree['children'])} top-level nodes ({source.kind})")
        return tree


def strip_quotes(line):
    match = BLOCKQUOTE_RE.match(line)
    while match:
        line = line[match.end():]
        match = BLOCKQUOTE_RE.match(line)
    return line


def split_containers(line):
    """Return ``(offset, rest)`` with block quote and list markers removed."""
    offset = 0
    match = CONTAINER_RE.match(line)
    while match:
        offset += match.end()
        line = line[match.end():]
        match = CONTAINER_RE.match(line)
    return offset, line


def scan_lines(text):
    """Walk ``text`` line by line, keeping track of fenced code.

    Yields ``(lineno, line, in_code)`` where ``in_code`` is true for fence
    lines and everything between them. Fences may open inside block quotes
    and list items. A fence only closes on a run of its own character at
    least as long as the opener. Raises ParseError if the text ends inside
    a fence.
    """
    opener = None  # (char, length, column, lineno)
    list_indent = 0
    for lineno, line in enumerate(text.split('\n'), start=1):
        if opener is not None:
            char, length, column, _ = opener
            content = strip_quotes(line)
            body = content.strip()
            indent = len(content) - len(content.lstrip(' '))
            if body and set(body) == {char} and len(body) >= length and indent <= column + 3:
                opener = None
            yield lineno, line, True
            continue

        offset, rest = split_containers(line)
        body = rest.lstrip(' ')
        indent = len(rest) - len(body)
        if offset:
            list_indent = offset
            allowed = 3
        else:
            allowed = list_indent + 3
            if body and not indent:
                list_indent = 0

        match = FENCE_RE.match(body) if indent <= allowed else None
        # a backtick fence's info string may not contain backticks
        if match and not (match.group(1)[0] == '`' and '`' in match.group(2)):
            marker = match.group(1)
            opener = (marker[0], len(marker), offset + indent, lineno)
            yield lineno, line, True
            continue
        yield lineno, line, False

    if opener is not None:
        raise ParseError("Unterminated fenced code block", line=opener[3])


def check_fences(text):
    """Raise ParseError if a fenced code block is never closed."""
    for _ in scan_lines(text):
        pass


def outside_inline_code(line, replace):
    """Apply ``replace`` to the parts of ``line`` that are not code spans."""
    parts = []
    position = 0
    for match in INLINE_CODE_RE.finditer(line):
        parts.append(replace(line[position:match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(replace(line[position:]))
    return ''.join(parts)


def check_expressions(text):
    """Raise ParseError on unbalanced MDX expression braces outside code."""
    depth = 0
    opened_at = []
    for lineno, line, in_code in scan_lines(text):
        if in_code:
            continue

        escaped = False
        for char in INLINE_CODE_RE.sub('', line):
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '{':
                depth += 1
                opened_at.append(lineno)
            elif char == '}':
                if depth == 0:
                    raise ParseError("Unexpected closing brace in MDX expression", line=lineno)
                depth -= 1
                opened_at.pop()
    if depth:
        raise ParseError("Unterminated MDX expression", line=opened_at[-1])


def protect_escaped_braces(text):
    lines = []
    for _, line, in_code in scan_lines(text):
        if not in_code:
            line = outside_inline_code(line, lambda part: part.replace('\\{', LITERAL_BRACE))
        lines.append(line)
    return '\n'.join(lines)


def restore_braces(value, raw=False):
    return value.replace(LITERAL_BRACE, '\\{' if raw else '{')


def split_expressions(nodes):
    """Turn ``{name}`` references inside text nodes into expression nodes."""
    result = []
    for node in nodes:
        if node['type'] != 'text':
            result.append(node)
            continue
        value = node['value']
        position = 0
        for match in EXPRESSION_RE.finditer(value):
            if match.start() > position:
                result.append({'type': 'text', 'value': restore_braces(value[position:match.start()])})
            result.append({'type': 'expression', 'value': match.group(1)})
            position = match.end()
        if position < len(value) or not position:
            result.append({'type': 'text', 'value': restore_braces(value[position:])})
    return result


def normalize_tokens(tokens, kind='markdown'):
    nodes = []
    for token in tokens:
        node = normalize_token(token, kind)
        if node is None:
            continue
        # merge adjacent text runs
        if node['type'] == 'text' and nodes and nodes[-1]['type'] == 'text':
            nodes[-1]['value'] += node['value']
            continue
        nodes.append(node)
    if kind == 'mdx':
        nodes = split_expressions(nodes)
    return nodes


def normalize_token(token, kind='markdown'):
    token_type = token['type']
    if token_type == 'blank_line':
        return None

    if token_type in HTML_TYPES:
        token_type = 'jsx' if kind == 'mdx' else 'html'
    node = {'type': token_type}

    if 'raw' in token:
        node['value'] = token['raw']
        if kind == 'mdx' and token_type != 'text':
            node['value'] = restore_braces(node['value'], raw=token_type in RAW_TYPES)

    attrs = dict(token.get('attrs') or {})
    if token_type == 'list':
        for key in LIST_ATTRS:
            if key in token:
                attrs[key] = token[key]
    if kind == 'mdx':
        attrs = {key: restore_braces(value) if isinstance(value, str) else value
                 for key, value in attrs.items()}
    if attrs:
        node['attrs'] = attrs

    if 'children' in token:
        node['children'] = normalize_tokens(token['children'], kind)
    return node
