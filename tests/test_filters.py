"""Tests for metric enable/disable filtering."""

import pytest

from ceilometer_exporter.catalog import build_catalog
from ceilometer_exporter.filters import filter_catalog, glob_match, should_include


class TestGlobMatch:
    """Tests for the '*'-only glob matcher."""

    @pytest.mark.parametrize('pattern,name,expected', [
        ('*', 'cpu', True),
        ('*', '', True),
        ('cpu', 'cpu', True),
        ('cpu', 'cpu_util', False),
        ('cpu*', 'cpu_util', True),
        ('*util', 'cpu_util', True),
        ('disk.*.bytes', 'disk.read.bytes', True),
        ('disk.*.bytes', 'disk.read.requests', False),
        ('disk.*', 'diskXread', False),
        ('', 'cpu', False),
    ])
    def test_glob_match(self, pattern, name, expected):
        assert glob_match(pattern, name) is expected

    def test_question_mark_and_brackets_are_literal(self):
        """Only '*' is special."""
        assert not glob_match('cpu?', 'cpu1')
        assert glob_match('cpu?', 'cpu?')
        assert not glob_match('[ab]', 'a')
        assert glob_match('[ab]', '[ab]')


class TestShouldInclude:
    """Tests for should_include()."""

    def test_default_includes_everything(self):
        assert should_include('cpu', ['*'], [])

    def test_enabled_prefix_not_disabled(self):
        assert should_include('cpu', ['cpu*'], ['cpu_util'])

    def test_disabled_wins_after_enabled_match(self):
        assert not should_include('cpu_util', ['cpu*'], ['cpu_util'])

    def test_no_enabled_match_excludes(self):
        assert not should_include('memory', ['cpu*'], [])

    def test_no_enabled_match_ignores_disabled(self):
        assert not should_include('memory', ['cpu*'], ['nothing'])

    def test_empty_enabled_list_excludes_everything(self):
        assert not should_include('cpu', [], [])

    def test_later_enabled_pattern_still_opens_check(self):
        assert should_include('memory', ['cpu*', 'mem*'], ['disk*'])
        assert not should_include('memory.usage', ['cpu*', 'mem*'], ['*.usage'])


class TestFilterCatalog:
    """Tests for narrowing the catalog to the active set."""

    def test_filter_catalog_keeps_matching_entries(self):
        catalog = build_catalog()
        active = filter_catalog(catalog, ['network.services.lb.*'], ['*.connections'])
        assert sorted(active) == [
            'network.services.lb.incoming.bytes',
            'network.services.lb.member',
            'network.services.lb.outgoing.bytes',
            'network.services.lb.pool',
            'network.services.lb.vip',
        ]
        assert active['network.services.lb.pool'] is catalog['network.services.lb.pool']

    def test_filter_catalog_default_keeps_all(self):
        catalog = build_catalog()
        assert filter_catalog(catalog, ['*'], []) == catalog
