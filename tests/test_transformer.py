"""Tests for the ContentTransformer pipeline."""

import json

import pytest

from inkwell_pkg import (
    ContentTransformer,
    DocumentSource,
    ParseError,
    PluginError,
    SerializedDocument,
    resolve_plugins,
    transform,
)
from inkwell_pkg.document import find_all, text_content
from inkwell_pkg.plugins import SlugPlugin


class TestContentTransformer:
    """Test cases for ContentTransformer."""

    def test_hello_world_scenario(self, sample_scope):
        """Heading gets an id, paragraph keeps its text, scope is embedded untouched."""
        document = transform("# Hello\n\nWorld", sample_scope, resolve_plugins())

        headings = find_all(document.tree, 'heading')
        assert len(headings) == 1
        assert headings[0]['attrs']['id'] == 'hello'
        assert headings[0]['attrs']['level'] == 1

        paragraphs = find_all(document.tree, 'paragraph')
        assert [text_content(p) for p in paragraphs] == ['World']

        assert document.scope == sample_scope
        assert document.to_dict()['scope'] == sample_scope

    def test_empty_source_is_valid_empty_document(self, sample_scope):
        document = transform("", sample_scope, resolve_plugins())

        assert isinstance(document, SerializedDocument)
        assert document.is_empty
        assert document.tree == {'type': 'root', 'children': []}
        assert document.scope == sample_scope

    def test_whitespace_only_source(self):
        document = transform("\n\n   \n", {}, resolve_plugins())
        assert document.is_empty

    def test_none_source_rejected(self):
        with pytest.raises(ValueError):
            transform(None, {}, ())

    def test_empty_plugin_list_only_parses(self):
        document = transform("# Hello\n\nWorld", {}, [])

        heading = find_all(document.tree, 'heading')[0]
        assert 'id' not in heading.get('attrs', {})
        assert not find_all(document.tree, 'section')

    def test_determinism(self, sample_scope):
        source = "# Title\n\nSome *text* with a [link](https://example.org).[^1]\n\n[^1]: A note 🎉\n"
        first = transform(source, sample_scope, resolve_plugins())
        second = transform(source, dict(sample_scope), resolve_plugins())
        third = ContentTransformer(resolve_plugins()).transform(source, sample_scope)

        assert first.compiled_source == second.compiled_source == third.compiled_source
        assert first == second

    def test_same_transformer_reused(self, sample_scope):
        transformer = ContentTransformer(resolve_plugins())
        a = transformer.transform("## Intro\n\n## Intro", sample_scope)
        b = transformer.transform("## Intro\n\n## Intro", sample_scope)

        # slug counters do not leak between documents
        ids = [h['attrs']['id'] for h in find_all(b.tree, 'heading')]
        assert ids == ['intro', 'intro-1']
        assert a.compiled_source == b.compiled_source

    def test_scope_pass_through(self):
        scope = {
            'zeta': 'last-declared-first',
            'title': 'Hi',
            'description': '',
            'date': None,
            'tags': ['a', 'b'],
            'imageUrl': None,
            'count': 3,
        }
        document = transform("text", scope, resolve_plugins())

        assert document.scope == scope
        assert list(document.scope) == list(scope)
        assert list(document.to_dict()['scope']) == list(scope)

    def test_scope_is_copied(self):
        scope = {'title': 'Hi', 'tags': ['a']}
        document = transform("text", scope, [])

        scope['tags'].append('b')
        scope['title'] = 'Changed'

        assert document.scope == {'title': 'Hi', 'tags': ['a']}

    def test_scope_must_be_mapping(self):
        with pytest.raises(TypeError):
            transform("text", ['not', 'a', 'mapping'], [])

    def test_plugin_order_sensitivity(self, camel_case_plugin):
        source = "# Hello World\n"

        slug_first = transform(source, {}, [SlugPlugin(), camel_case_plugin()])
        case_first = transform(source, {}, [camel_case_plugin(), SlugPlugin()])

        slug_first_id = find_all(slug_first.tree, 'heading')[0]['attrs']['id']
        case_first_id = find_all(case_first.tree, 'heading')[0]['attrs']['id']
        assert slug_first_id == 'hello-world'
        assert case_first_id == 'helloworld'
        assert slug_first_id != case_first_id

    def test_plugins_run_in_order(self, recording_plugin):
        calls = []
        plugins = [recording_plugin('first', calls), recording_plugin('second', calls), recording_plugin('third', calls)]

        transform("text", {}, plugins)

        assert calls == ['first', 'second', 'third']

    def test_fail_fast(self, recording_plugin, failing_plugin):
        calls = []
        plugins = [recording_plugin('before', calls), failing_plugin(), recording_plugin('after', calls)]

        with pytest.raises(PluginError) as excinfo:
            transform("# Hi", {}, plugins)

        assert calls == ['before']
        assert excinfo.value.plugin_name == 'boom'
        assert excinfo.value.step_index == 1
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert 'kaboom' in str(excinfo.value)

    def test_plugin_raising_plugin_error_is_tagged(self):
        class Strict(SlugPlugin):
            name = 'strict'

            def run(self, tree):
                raise PluginError('whoever', -1, 'bad heading')

        with pytest.raises(PluginError) as excinfo:
            transform("# Hi", {}, [SlugPlugin(), Strict()])

        assert excinfo.value.plugin_name == 'strict'
        assert excinfo.value.step_index == 1
        assert excinfo.value.message == 'bad heading'
        assert "Plugin 'strict' failed at step 1" in str(excinfo.value)
        assert 'whoever' not in str(excinfo.value)
        assert excinfo.value.__cause__.plugin_name == 'whoever'

    def test_plugin_returning_garbage(self):
        class Garbage(SlugPlugin):
            name = 'garbage'

            def run(self, tree):
                return ['not', 'a', 'tree']

        with pytest.raises(PluginError) as excinfo:
            transform("# Hi", {}, [Garbage()])
        assert excinfo.value.plugin_name == 'garbage'
        assert excinfo.value.step_index == 0

    def test_object_without_run_rejected(self):
        with pytest.raises(TypeError):
            ContentTransformer([object()])

    def test_parse_error_for_unterminated_fence(self):
        with pytest.raises(ParseError) as excinfo:
            transform("Intro\n\n```js\nconsole.log(1)\n", {}, resolve_plugins())
        assert excinfo.value.line == 3

    def test_mdx_kind(self):
        document = transform(DocumentSource("<div>\nHi\n</div>\n", kind='mdx'), {}, [])

        assert document.kind == 'mdx'
        assert find_all(document.tree, 'jsx')
        assert not find_all(document.tree, 'html')

    def test_markdown_kind_keeps_html(self):
        document = transform("<div>\nHi\n</div>\n", {}, [])
        assert find_all(document.tree, 'html')

    def test_dates_in_scope_are_encoded(self):
        from datetime import date

        document = transform("text", {'date': date(2024, 1, 1)}, [])

        assert document.scope == {'date': '2024-01-01'}
        assert document.to_dict()['scope'] == {'date': '2024-01-01'}

    def test_hydrated_document_equals_original(self):
        from datetime import datetime

        scope = {'title': 'Hi', 'date': datetime(2024, 1, 1, 9, 30), 'tags': ('a', 'b')}
        document = transform("# Hi", scope, resolve_plugins())

        assert SerializedDocument.from_json(document.compiled_source) == document
        assert document.scope == {'title': 'Hi', 'date': '2024-01-01T09:30:00', 'tags': ['a', 'b']}

    def test_unserializable_scope_value(self):
        with pytest.raises(TypeError):
            transform("text", {'bad': object()}, [])

    def test_fingerprint(self, sample_scope):
        transformer = ContentTransformer(resolve_plugins())

        key = transformer.fingerprint("# Hi", sample_scope)
        assert key == transformer.fingerprint("# Hi", dict(sample_scope))
        assert key != transformer.fingerprint("# Hey", sample_scope)
        assert key != transformer.fingerprint("# Hi", dict(sample_scope, title='Other'))
        assert key != ContentTransformer(resolve_plugins(['slug'])).fingerprint("# Hi", sample_scope)


class TestSerializedDocument:
    """Hydrating and inspecting serialized output."""

    def test_round_trip_from_compiled_source(self, sample_scope):
        document = transform("# Hello\n\nWorld", sample_scope, resolve_plugins())
        hydrated = SerializedDocument.from_json(document.compiled_source)

        assert hydrated == document
        assert hydrated.tree == document.tree
        assert hydrated.scope == sample_scope

    def test_payload_shape(self):
        payload = json.loads(transform("# Hi", {'title': 'Hi'}, []).compiled_source)

        assert list(payload) == ['format', 'version', 'kind', 'tree', 'scope']
        assert payload['format'] == 'inkwell-document'
        assert payload['version'] == 1
        assert payload['tree']['type'] == 'root'

    def test_tree_is_a_copy(self):
        document = transform("# Hi", {}, [])
        tree = document.tree
        tree['children'].clear()

        assert document.tree['children']

    def test_rejects_foreign_json(self):
        with pytest.raises(ValueError):
            SerializedDocument.from_json('{"format": "something-else", "version": 1}')

    def test_rejects_unknown_version(self):
        with pytest.raises(ValueError):
            SerializedDocument.from_json('{"format": "inkwell-document", "version": 99}')

    def test_frozen(self):
        document = transform("# Hi", {}, [])
        with pytest.raises(Exception):
            document.compiled_source = 'changed'
