"""Tests for file and HTTP content sources."""

import os
from datetime import date
from unittest.mock import Mock

import pytest
import requests

from inkwell_pkg.errors import InkwellError
from inkwell_pkg.sources import FileContentSource, HttpContentSource, normalize_record, split_front_matter


class TestNormalizeRecord:
    """Test cases for normalize_record."""

    def test_full_record(self):
        record = normalize_record({
            'body': '# Hi',
            'imageUrl': 'https://cdn.example.org/a.png',
            'tags': ['a', 'b'],
            'date': date(2024, 1, 1),
            'description': 'desc',
            'title': 'Hi',
        })

        assert list(record) == ['title', 'description', 'date', 'tags', 'imageUrl', 'body']
        assert record['date'] == '2024-01-01'
        assert record['tags'] == ['a', 'b']

    def test_defaults(self):
        assert normalize_record({}) == {
            'title': '', 'description': '', 'date': None, 'tags': [], 'imageUrl': None, 'body': '',
        }

    def test_comma_separated_tags(self):
        assert normalize_record({'tags': 'one, two,,three'})['tags'] == ['one', 'two', 'three']

    def test_image_aliases(self):
        assert normalize_record({'featured_image': '/a.png'})['imageUrl'] == '/a.png'
        assert normalize_record({'image_url': '/b.png', 'image': '/c.png'})['imageUrl'] == '/b.png'

    def test_blank_date(self):
        assert normalize_record({'date': '  '})['date'] is None


class TestSplitFrontMatter:
    def test_with_front_matter(self):
        metadata, body = split_front_matter("---\ntitle: Hi\n---\n\n# Body\n")
        assert metadata == {'title': 'Hi'}
        assert body == "# Body\n"

    def test_without_front_matter(self):
        assert split_front_matter("# Body\n") == ({}, "# Body\n")

    def test_front_matter_must_be_mapping(self):
        import yaml

        with pytest.raises(yaml.YAMLError):
            split_front_matter("---\n- a\n- b\n---\nbody")


class TestFileContentSource:
    """Test cases for FileContentSource."""

    def test_identifiers(self, mock_content_dir):
        source = FileContentSource(mock_content_dir)
        assert source.identifiers() == ['broken', 'hello', 'undated']

    def test_missing_directory(self, temp_dir):
        source = FileContentSource(os.path.join(temp_dir, 'missing'))
        assert source.identifiers() == []

    def test_get(self, mock_content_dir):
        record = FileContentSource(mock_content_dir).get('hello')

        assert record['title'] == 'Hi'
        assert record['description'] == 'A first post'
        assert record['date'] == '2024-01-01'
        assert record['tags'] == ['intro', 'meta']
        assert record['imageUrl'] == 'https://cdn.example.org/cover.png'
        assert record['body'] == "# Hello\n\nWorld\n"

    def test_get_without_date(self, mock_content_dir):
        assert FileContentSource(mock_content_dir).get('undated')['date'] is None

    def test_kind_for(self, mock_content_dir):
        source = FileContentSource(mock_content_dir)
        assert source.kind_for('hello') == 'mdx'
        assert source.kind_for('undated') == 'markdown'

    def test_unknown_identifier(self, mock_content_dir):
        with pytest.raises(InkwellError):
            FileContentSource(mock_content_dir).get('nope')

    @pytest.mark.parametrize('identifier', ['../secret', 'sub/post', '.hidden'])
    def test_path_like_identifier_rejected(self, mock_content_dir, identifier):
        with pytest.raises(InkwellError):
            FileContentSource(mock_content_dir).get(identifier)

    def test_invalid_yaml(self, mock_content_dir):
        with open(os.path.join(mock_content_dir, 'bad.md'), 'w', encoding='utf-8') as f:
            f.write("---\ntitle: [unclosed\n---\nbody\n")

        with pytest.raises(InkwellError) as excinfo:
            FileContentSource(mock_content_dir).get('bad')
        assert 'Invalid YAML front matter' in str(excinfo.value)


class TestHttpContentSource:
    """Test cases for HttpContentSource."""

    def respond(self, mock_session, *payloads):
        responses = []
        for payload in payloads:
            response = Mock()
            response.json.return_value = payload
            responses.append(response)
        mock_session.get.side_effect = responses

    def test_identifiers(self, mock_session):
        self.respond(mock_session, ['b-post.md', {'filename': 'a-post.mdx'}, {'other': 1}, 'c-post'])
        source = HttpContentSource('https://cms.example.com/api/', session=mock_session)

        assert source.identifiers() == ['a-post', 'b-post', 'c-post']
        mock_session.get.assert_called_once_with('https://cms.example.com/api/posts', timeout=30)
        assert source.kind_for('a-post') == 'mdx'
        assert source.kind_for('b-post') == 'markdown'
        assert source.kind_for('unknown') == 'mdx'

    def test_get(self, mock_session):
        self.respond(mock_session, {'title': 'Hi', 'date': '2024-01-01', 'body': '# Hello'})
        source = HttpContentSource('https://cms.example.com/api', session=mock_session)

        record = source.get('hello world')

        assert record['title'] == 'Hi'
        assert record['body'] == '# Hello'
        mock_session.get.assert_called_once_with('https://cms.example.com/api/posts/hello%20world', timeout=30)

    def test_unsafe_listing_entries_skipped(self, mock_session):
        self.respond(mock_session, ['..', '.', {'filename': '.hidden.md'}, '', 'good.md'])
        source = HttpContentSource('https://cms.example.com/api', session=mock_session)

        assert source.identifiers() == ['good']

    @pytest.mark.parametrize('identifier', ['..', '../secret', '.hidden', ''])
    def test_unsafe_identifier_not_requested(self, mock_session, identifier):
        with pytest.raises(InkwellError):
            HttpContentSource('https://cms.example.com/api', session=mock_session).get(identifier)
        mock_session.get.assert_not_called()

    def test_get_non_object(self, mock_session):
        self.respond(mock_session, ['not', 'a', 'record'])
        with pytest.raises(InkwellError):
            HttpContentSource('https://cms.example.com/api', session=mock_session).get('hello')

    def test_connection_error(self, mock_session):
        mock_session.get.side_effect = requests.exceptions.ConnectionError('down')
        source = HttpContentSource('https://cms.example.com/api', session=mock_session)

        with pytest.raises(InkwellError) as excinfo:
            source.identifiers()
        assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)

    def test_http_error(self, mock_session):
        response = Mock()
        response.raise_for_status.side_effect = requests.exceptions.HTTPError('404 Not Found')
        mock_session.get.return_value = response

        with pytest.raises(InkwellError):
            HttpContentSource('https://cms.example.com/api', session=mock_session).get('missing')

    def test_invalid_json(self, mock_session):
        response = Mock()
        response.json.side_effect = ValueError('No JSON object could be decoded')
        mock_session.get.return_value = response

        with pytest.raises(InkwellError):
            HttpContentSource('https://cms.example.com/api', session=mock_session).identifiers()

    def test_close(self, mock_session):
        HttpContentSource('https://cms.example.com/api', session=mock_session).close()
        mock_session.close.assert_called_once()
