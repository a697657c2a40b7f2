from pathlib import Path

from adfmark.utils.emoji_mapping import get_emoji, is_known_shortname
from adfmark.utils.json_utils import CIRCULAR_SENTINEL, safe_json_dumps, sanitize_for_json, try_parse_json


class TestSanitizeForJson:
    def test_self_reference_is_marked(self):
        attrs: dict = {'localId': 'p1'}
        attrs['self'] = attrs

        assert sanitize_for_json(attrs) == {'localId': 'p1', 'self': CIRCULAR_SENTINEL}

    def test_indirect_cycle_is_marked(self):
        outer: dict = {'items': []}
        outer['items'].append({'parent': outer})

        assert sanitize_for_json(outer) == {'items': [{'parent': '[Circular]'}]}

    def test_shared_objects_are_not_cycles(self):
        shared = {'a': 1}

        assert sanitize_for_json({'x': shared, 'y': [shared]}) == {'x': {'a': 1}, 'y': [{'a': 1}]}

    def test_unknown_values_become_strings(self):
        assert sanitize_for_json({'path': Path('docs'), 'pair': (1, 2)}) == {'path': 'docs', 'pair': [1, 2]}

    def test_safe_json_dumps_terminates_on_cycles(self):
        attrs: dict = {}
        attrs['loop'] = attrs

        assert safe_json_dumps(attrs) == '{"loop": "[Circular]"}'

    def test_safe_json_dumps_keeps_unicode(self):
        assert safe_json_dumps({'text': 'héllo'}) == '{"text": "héllo"}'

    def test_try_parse_json(self):
        assert try_parse_json('[1]') == [1]
        assert try_parse_json('{bad') is None


class TestEmojiMapping:
    def test_known_shortnames(self):
        assert get_emoji('smile') == get_emoji(':smile:')
        assert get_emoji('smile') is not None
        assert is_known_shortname(':thumbsup:')

    def test_unknown_shortname(self):
        assert get_emoji('no_such_emoji') is None
        assert is_known_shortname('no_such_emoji') is False
