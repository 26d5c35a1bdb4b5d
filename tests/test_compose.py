import gc
import unittest
import weakref
from typing import Optional

from pydantic import BaseModel, ValidationError

from querycontract.core.errors import ConfigError
from querycontract.services.composer import build_meta_schema, build_output_schema, compose
from querycontract.services.filtering import FieldFilter, build_filtering_config
from querycontract.services.pagination import build_pagination_config
from querycontract.services.search import build_search_config
from querycontract.services.sorting import build_sorting_config


class _Item(BaseModel):
    id: int
    name: str


class ComposeTests(unittest.TestCase):
    def test_wire_fields_are_owned_by_modules(self):
        contract = compose(
            pagination=build_pagination_config(),
            sorting=build_sorting_config(["name"]),
            filtering=build_filtering_config({"age": FieldFilter("number", operators=["gt"])}),
        )
        self.assertEqual(contract.owner_of("limit"), "pagination")
        self.assertEqual(contract.owner_of("sortBy"), "sorting")
        self.assertEqual(contract.owner_of("age_gt"), "filtering")
        self.assertIsNone(contract.owner_of("query"))
        self.assertEqual(contract.modules, ("pagination", "sorting", "filtering"))
        self.assertTrue(contract.strict)

    def test_extra_field_colliding_with_limit_is_rejected(self):
        with self.assertRaises(ConfigError) as ctx:
            compose(pagination=build_pagination_config(), extra_fields={"limit": int})
        self.assertIn("limit", str(ctx.exception))
        self.assertIn("pagination", str(ctx.exception))
        self.assertIn("extra", str(ctx.exception))

    def test_filter_field_colliding_with_search_key_is_rejected(self):
        with self.assertRaises(ConfigError) as ctx:
            compose(
                filtering=build_filtering_config({"query": "string"}),
                search=build_search_config(["name"]),
            )
        self.assertIn("filtering", str(ctx.exception))
        self.assertIn("search", str(ctx.exception))

    def test_filter_field_colliding_with_sort_key_is_rejected(self):
        with self.assertRaises(ConfigError):
            compose(
                sorting=build_sorting_config(["name"]),
                filtering=build_filtering_config({"sortBy": "string"}),
            )

    def test_extra_field_declarations(self):
        contract = compose(extra_fields={"tenant": (str, ...), "archived": (bool, False), "note": Optional[str]})
        self.assertTrue(contract.extra_fields["tenant"].required)
        self.assertFalse(contract.extra_fields["archived"].required)
        self.assertEqual(contract.extra_fields["archived"].default, False)
        self.assertIsNone(contract.extra_fields["note"].default)
        self.assertEqual(contract.owner_of("tenant"), "extra")

    def test_disabled_keys_are_reserved(self):
        contract = compose(sorting=build_sorting_config(["name"]), search=build_search_config(["name"]))
        self.assertEqual(contract.reserved.get("nullsHandling"), "sorting")
        self.assertEqual(contract.reserved.get("searchFields"), "search")
        self.assertNotIn("sortBy", contract.reserved)

    def test_strict_can_be_relaxed(self):
        self.assertFalse(compose(pagination=build_pagination_config(), strict=False).strict)


class MetaSchemaTests(unittest.TestCase):
    def test_offset_pagination_meta(self):
        contract = compose(pagination=build_pagination_config())
        meta = build_meta_schema(contract)
        self.assertEqual(set(meta.model_fields), {"total", "limit", "hasMore", "offset"})
        self.assertTrue(meta.model_fields["hasMore"].is_required())

    def test_page_and_cursor_meta(self):
        contract = compose(pagination=build_pagination_config(modes=["page", "cursor"]))
        fields = set(build_meta_schema(contract).model_fields)
        self.assertEqual(fields, {"total", "limit", "hasMore", "page", "totalPages", "nextCursor", "prevCursor"})

    def test_facet_meta_fields(self):
        contract = compose(
            pagination=build_pagination_config(),
            sorting=build_sorting_config(["name"]),
            filtering=build_filtering_config({"age": "number"}),
            search=build_search_config(["name"]),
        )
        fields = set(build_meta_schema(contract).model_fields)
        self.assertTrue({"sortBy", "sortDirection", "appliedFilters", "filterCount"} <= fields)
        self.assertTrue({"searchQuery", "searchFields"} <= fields)

    def test_meta_without_pagination_is_total_only(self):
        contract = compose(sorting=build_sorting_config(["name"]))
        meta = build_meta_schema(contract)
        self.assertIn("total", meta.model_fields)
        self.assertFalse(meta.model_fields["total"].is_required())
        self.assertNotIn("limit", meta.model_fields)

    def test_meta_schema_is_cached_per_contract(self):
        contract = compose(pagination=build_pagination_config())
        self.assertIs(build_meta_schema(contract), build_meta_schema(contract))

    def test_meta_schema_cache_does_not_keep_contracts_alive(self):
        contract = compose(pagination=build_pagination_config())
        build_meta_schema(contract)
        ref = weakref.ref(contract)
        del contract
        gc.collect()
        self.assertIsNone(ref())

    def test_output_schema_wraps_items(self):
        contract = compose(pagination=build_pagination_config())
        page_model = build_output_schema(contract, _Item)
        self.assertEqual(page_model.__name__, "_ItemPage")
        page = page_model.model_validate(
            {
                "data": [{"id": 1, "name": "a"}],
                "meta": {"total": 1, "limit": 10, "hasMore": False, "offset": 0},
            }
        )
        self.assertEqual(page.data[0].name, "a")
        with self.assertRaises(ValidationError):
            page_model.model_validate({"data": [], "meta": {"total": 0}})


if __name__ == "__main__":
    unittest.main()
