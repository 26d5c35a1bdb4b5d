import unittest

from querycontract.services.composer import build_page_meta, compose
from querycontract.services.filtering import FieldFilter, build_filtering_config
from querycontract.services.pagination import build_pagination_config
from querycontract.services.search import build_search_config
from querycontract.services.sorting import build_sorting_config
from querycontract.services.validator import validate


class PageMetaTests(unittest.TestCase):
    def test_offset_meta(self):
        contract = compose(pagination=build_pagination_config(default_limit=10))
        request = validate(contract, {"offset": "20"}).unwrap()
        meta = build_page_meta(contract, request, total=35)
        self.assertEqual(meta, {"total": 35, "limit": 10, "hasMore": True, "offset": 20})

        request = validate(contract, {"offset": "30"}).unwrap()
        self.assertFalse(build_page_meta(contract, request, total=35)["hasMore"])

    def test_page_meta(self):
        contract = compose(pagination=build_pagination_config(modes=["offset", "page"]))
        request = validate(contract, {"page": "2", "limit": "10"}).unwrap()
        meta = build_page_meta(contract, request, total=25)
        self.assertEqual(meta["page"], 2)
        self.assertEqual(meta["totalPages"], 3)
        self.assertEqual(meta["offset"], 10)
        self.assertTrue(meta["hasMore"])

    def test_cursor_meta(self):
        contract = compose(pagination=build_pagination_config(modes=["cursor"]))
        request = validate(contract, {"cursor": "abc"}).unwrap()
        meta = build_page_meta(contract, request, total=100, next_cursor="def", prev_cursor="zzz")
        self.assertEqual(meta["nextCursor"], "def")
        self.assertEqual(meta["prevCursor"], "zzz")
        self.assertTrue(meta["hasMore"])
        last = build_page_meta(contract, request, total=100)
        self.assertFalse(last["hasMore"])
        self.assertIsNone(last["nextCursor"])

    def test_facet_meta(self):
        contract = compose(
            pagination=build_pagination_config(),
            sorting=build_sorting_config(["name"], default_field="name"),
            filtering=build_filtering_config({"age": FieldFilter("number", operators=["eq", "gt"])}),
            search=build_search_config(["name", "email"]),
        )
        request = validate(contract, {"age_gt": "3", "age": "7", "query": "bob"}).unwrap()
        meta = build_page_meta(contract, request, total=0)
        self.assertEqual(meta["sortBy"], "name")
        self.assertEqual(meta["sortDirection"], "asc")
        self.assertEqual(meta["appliedFilters"], {"age_gt": 3, "age": 7})
        self.assertEqual(meta["filterCount"], 2)
        self.assertEqual(meta["searchQuery"], "bob")
        self.assertEqual(meta["searchFields"], ["name", "email"])
        self.assertFalse(meta["hasMore"])

    def test_meta_without_pagination(self):
        contract = compose(sorting=build_sorting_config(["name"]))
        request = validate(contract, {}).unwrap()
        meta = build_page_meta(contract, request, total=4)
        self.assertEqual(meta, {"total": 4, "sortBy": None, "sortDirection": "asc"})


if __name__ == "__main__":
    unittest.main()
