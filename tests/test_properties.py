import io
import os
from datetime import datetime, timedelta, timezone

import pytest

from webcache.errors import ParseError, UsageError
from webcache.properties import CacheProperties, format_timestamp, parse_timestamp

PLUS_ONE = timezone(timedelta(hours=1))


def load_fixture(data_dir, name):
    with open(os.path.join(data_dir, name), 'rb') as f:
        return CacheProperties.load(f)


class TestReadProperties:

    def test_read_with_charset(self, data_dir):
        """Weak ETag and a charset, but no Last-Modified"""
        properties = load_fixture(data_dir, 'properties_gemologica.json')

        assert properties.body_base == 'body'
        assert properties.body_extension == '.json'
        assert properties.content_type == 'application/json'
        assert properties.charset == 'UTF-8'
        assert properties.last_modified is None
        assert properties.etag == 'W/"424a25-Ie0CoPkr9tV7mpas7QYK1BcjBrs"'
        assert properties.timestamp == datetime(2025, 7, 22, 14, 36, 37, tzinfo=PLUS_ONE)

    def test_read_with_last_modified(self, data_dir):
        """Strong ETag and Last-Modified, but no charset"""
        properties = load_fixture(data_dir, 'properties_tarandata.json')

        assert properties.charset is None
        assert properties.last_modified == 'Fri, 25 Jul 2025 07:03:11 GMT'
        assert properties.etag == '"261d93-63abb88f029c0"'
        assert properties.timestamp == datetime(2025, 7, 26, 10, 4, 40, tzinfo=PLUS_ONE)
        assert properties.body_name() == 'body.json'

    def test_keys_in_any_order(self):
        properties = CacheProperties.loads('{"Charset": "ISO-8859-1", "Body-Base": "data"}')
        assert properties.body_base == 'data'
        assert properties.charset == 'ISO-8859-1'
        assert properties.body_extension is None

    def test_whitespace_is_ignored(self):
        properties = CacheProperties.loads('\n\n {\t"Body-Base" :\n"body"   }\n\n')
        assert properties.body_base == 'body'

    @pytest.mark.parametrize('text', [
        '',
        '"Body-Base": "body"}',
        '{"Body-Base": "body"',
        '{"Body-Base" "body"}',
        '{"Body-Base": "body" "Charset": "UTF-8"}',
        '{"Body-Base": body}',
        '{"Body-Base": "body"} extra',
        '{}',
    ])
    def test_malformed(self, text):
        with pytest.raises(ParseError):
            CacheProperties.loads(text)

    def test_unrecognised_key(self):
        with pytest.raises(ParseError, match='Unrecognised'):
            CacheProperties.loads('{"Body-Base": "body", "Expires": "never"}')

    def test_invalid_values_are_parse_errors(self):
        with pytest.raises(ParseError):
            CacheProperties.loads('{"Body-Extension": "json"}')
        with pytest.raises(ParseError):
            CacheProperties.loads('{"Charset": "no-such-charset"}')
        with pytest.raises(ParseError):
            CacheProperties.loads('{"Timestamp": "yesterday"}')

    def test_invalid_utf8(self):
        with pytest.raises(ParseError):
            CacheProperties.load(io.BytesIO(b'{"Body-Base": "\xff"}'))


class TestWriteProperties:

    def test_write_all_values(self):
        properties = CacheProperties.new_with_defaults()
        properties.body_extension = '.json'
        properties.content_type = 'application/json'
        properties.charset = 'UTF-8'
        properties.last_modified = 'Fri, 25 Jul 2025 07:03:11 GMT'
        properties.etag = '"261d93-63abb88f029c0"'
        properties.timestamp = datetime(2025, 7, 26, 10, 4, 40, tzinfo=timezone(-timedelta(hours=5)))

        assert properties.dumps().splitlines() == [
            '{',
            '  "Body-Base": "body",',
            '  "Body-Extension": ".json",',
            '  "Content-Type": "application/json",',
            '  "Charset": "UTF-8",',
            '  "Last-Modified": "Fri, 25 Jul 2025 07:03:11 GMT",',
            '  "ETag": "\\"261d93-63abb88f029c0\\"",',
            '  "Timestamp": "Sat, 26 Jul 2025 10:04:40 -0500"',
            '}',
        ]

    def test_unset_values_are_omitted(self):
        properties = CacheProperties.new_with_defaults()
        assert properties.dumps() == '{\n  "Body-Base": "body"\n}\n'

    def test_write_then_read_everything(self):
        original = CacheProperties.new_with_defaults()
        original.body_extension = '.csv'
        original.content_type = 'text/csv'
        original.charset = 'windows-1252'
        original.last_modified = 'Fri, 25 Jul 2025 07:03:11 GMT'
        original.etag = 'W/"abc"'
        original.timestamp = datetime(2025, 1, 5, 23, 59, 1, tzinfo=timezone.utc)

        stream = io.BytesIO()
        original.write(stream)
        stream.seek(0)

        assert CacheProperties.load(stream) == original

    @pytest.mark.parametrize('etag,written', [
        ('"abc\\"', '  "ETag": "\\"abc\\\\\\""'),
        ('W/"a\\b"', '  "ETag": "W/\\"a\\\\b\\""'),
    ])
    def test_etag_with_backslash(self, etag, written):
        properties = CacheProperties.new_with_defaults()
        properties.etag = etag

        text = properties.dumps()

        assert text.splitlines()[2] == written
        assert CacheProperties.loads(text).etag == etag

    def test_fixture_is_in_canonical_form(self, data_dir):
        path = os.path.join(data_dir, 'properties_gemologica.json')
        with open(path, encoding='utf-8') as f:
            expected = f.read()
        assert load_fixture(data_dir, 'properties_gemologica.json').dumps() == expected

    def test_naive_timestamp_is_rejected(self):
        properties = CacheProperties.new_with_defaults()
        properties.timestamp = datetime(2025, 7, 26, 10, 4, 40)
        with pytest.raises(UsageError):
            properties.dumps()


class TestValues:

    def test_extension_needs_dot(self):
        properties = CacheProperties()
        with pytest.raises(UsageError):
            properties.body_extension = 'json'
        properties.body_extension = '.json'
        properties.body_extension = None
        assert properties.body_extension is None

    def test_unknown_charset(self):
        properties = CacheProperties()
        with pytest.raises(UsageError):
            properties.charset = 'klingon'

    def test_charset_name_kept_as_given(self):
        properties = CacheProperties()
        properties.charset = 'utf8'
        assert properties.charset == 'utf8'

    @pytest.mark.parametrize('extension,suffix,expected', [
        (None, None, 'body'),
        ('.json', None, 'body.json'),
        ('.json', 'pretty', 'body_pretty.json'),
        (None, 'pretty', 'body_pretty'),
    ])
    def test_body_name(self, extension, suffix, expected):
        properties = CacheProperties.new_with_defaults()
        properties.body_extension = extension
        assert properties.body_name(suffix) == expected


class TestTimestamps:

    def test_utc_written_as_gmt(self):
        value = datetime(2025, 7, 25, 7, 3, 11, tzinfo=timezone.utc)
        assert format_timestamp(value) == 'Fri, 25 Jul 2025 07:03:11 GMT'

    def test_offset_written_numerically(self):
        value = datetime(2025, 7, 22, 14, 36, 37, 999999, tzinfo=PLUS_ONE)
        assert format_timestamp(value) == 'Tue, 22 Jul 2025 14:36:37 +0100'

    def test_parse_gmt(self):
        value = parse_timestamp('Fri, 25 Jul 2025 07:03:11 GMT')
        assert value == datetime(2025, 7, 25, 7, 3, 11, tzinfo=timezone.utc)
        assert value.utcoffset() == timedelta(0)

    def test_parse_invalid(self):
        with pytest.raises(ParseError):
            parse_timestamp('26/07/2025')
