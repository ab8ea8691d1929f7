"""Tests for CQL discovery, tree expansion and destination resolution."""

import unittest
from pathlib import Path
from unittest.mock import MagicMock

from fetchers import SearchFetcher, SearchQueryError, convert_search_results
from models import UNKNOWN_SPACE, ContentItem, FetchResult


def search_record(content_id, title, space='ENG', expanded_space=False):
    content = {'id': content_id, 'title': title, '_links': {'webui': f'/pages/{content_id}'}}
    if expanded_space:
        content['space'] = {'key': space}
    elif space:
        content['_expandable'] = {'space': f'/rest/api/space/{space}'}
    return {'title': title, 'url': f'/display/{space}/{content_id}', 'content': content}


class FakeSearchClient:
    """Answers CQL queries from a dictionary; unknown queries match nothing."""

    def __init__(self, answers):
        self.answers = answers
        self.queries = []

    def search(self, cql):
        self.queries.append(cql)
        answer = self.answers.get(cql, [])
        if isinstance(answer, FetchResult):
            return answer
        return FetchResult(items=answer, pages_fetched=1)


class TestConvertSearchResults(unittest.TestCase):

    def test_space_key_from_expandable_link(self):
        items = convert_search_results([search_record('1', 'Home', space='OPS')])
        self.assertEqual(items[0].space_key, 'OPS')
        self.assertEqual(items[0].url, '/display/OPS/1')
        self.assertEqual(items[0].attachments_url, '/rest/api/content/1/child/attachment')

    def test_space_key_from_expanded_space(self):
        items = convert_search_results([search_record('2', 'Home', space='HR', expanded_space=True)])
        self.assertEqual(items[0].space_key, 'HR')

    def test_missing_space_falls_back(self):
        items = convert_search_results([search_record('3', 'Orphan', space=None)])
        self.assertEqual(items[0].space_key, UNKNOWN_SPACE)

    def test_malformed_record_skipped(self):
        items = convert_search_results([{'title': 'no content'}, search_record('4', 'Ok')])
        self.assertEqual([item.id for item in items], ['4'])


class TestSearchFetcher(unittest.TestCase):

    def setUp(self):
        self.snapshot = Path('/out/2024-05-01')

    def test_tree_expansion_shape(self):
        """A root with two children yields the root then both children under its title."""
        client = FakeSearchClient({
            'tree': [search_record('10', 'R')],
            'parent = 10': [search_record('11', 'C1'), search_record('12', 'C2')],
        })
        fetcher = SearchFetcher(client, self.snapshot)

        roots = fetcher.fetch_items('tree')
        expanded = fetcher.expand_trees(roots)

        self.assertEqual([(item.title, ancestor) for item, ancestor in expanded],
                         [('R', None), ('C1', 'R'), ('C2', 'R')])

    def test_grandchildren_not_followed(self):
        client = FakeSearchClient({
            'tree': [search_record('10', 'R')],
            'parent = 10': [search_record('11', 'C1')],
            'parent = 11': [search_record('111', 'GC')],
        })
        fetcher = SearchFetcher(client, self.snapshot)

        targets = fetcher.build_targets('single', 'tree')

        self.assertEqual([t.title for t in targets], ['R', 'C1'])
        self.assertNotIn('parent = 11', client.queries)

    def test_build_targets_destinations(self):
        client = FakeSearchClient({
            'single': [search_record('1', 'Standalone', space='DOC')],
            'tree': [search_record('10', 'Root/Page', space='ENG')],
            'parent = 10': [search_record('11', 'Child: One', space='ENG')],
        })
        fetcher = SearchFetcher(client, self.snapshot)

        targets = fetcher.build_targets('single', 'tree')

        self.assertEqual([t.destination for t in targets], [
            self.snapshot / 'DOC' / 'Standalone',
            self.snapshot / 'ENG' / 'RootPage',
            self.snapshot / 'ENG' / 'RootPage' / 'Child One',
        ])
        self.assertEqual(targets[2].ancestor_title, 'Root/Page')
        self.assertEqual(client.queries, ['single', 'tree', 'parent = 10'])

    def test_failed_query_is_recorded_not_raised(self):
        client = FakeSearchClient({
            'single': FetchResult.failure('HTTPError: 500 Server Error'),
            'tree': [search_record('10', 'R')],
        })
        fetcher = SearchFetcher(client, self.snapshot)

        targets = fetcher.build_targets('single', 'tree')

        self.assertEqual([t.title for t in targets], ['R'])
        self.assertEqual(len(fetcher.discovery_errors), 1)
        error = fetcher.discovery_errors[0]
        self.assertIsInstance(error, SearchQueryError)
        self.assertEqual(error.query, 'single')
        self.assertIn('500', str(error))

    def test_no_matches_is_not_an_error(self):
        fetcher = SearchFetcher(FakeSearchClient({}), self.snapshot)

        self.assertEqual(fetcher.build_targets('single', 'tree'), [])
        self.assertEqual(fetcher.discovery_errors, [])

    def test_custom_child_query(self):
        client = MagicMock()
        client.search.return_value = FetchResult(items=[])
        fetcher = SearchFetcher(client, self.snapshot, child_query_template='ancestor = {id}')
        root = ContentItem(id='7', title='R', space_key='ENG', url='/x', attachments_url='/a')

        fetcher.expand_trees([root])

        client.search.assert_called_once_with('ancestor = 7')


if __name__ == '__main__':
    unittest.main()
