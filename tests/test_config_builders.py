import unittest

from querycontract.core.errors import ConfigError
from querycontract.services.filtering import FieldFilter, build_filtering_config, filtering_fragment
from querycontract.services.operators import FilterOperator, ValueKind, ValueShape
from querycontract.services.pagination import build_pagination_config, pagination_fragment
from querycontract.services.search import build_search_config, search_fragment
from querycontract.services.sorting import build_sorting_config, sorting_fragment


class PaginationConfigTests(unittest.TestCase):
    def test_defaults_come_from_settings(self):
        cfg = build_pagination_config()
        self.assertEqual((cfg.min_limit, cfg.default_limit, cfg.max_limit), (1, 10, 100))
        self.assertEqual(cfg.modes, frozenset({"offset"}))

    def test_equal_options_give_equal_descriptors(self):
        self.assertEqual(
            build_pagination_config(default_limit=20, modes=["page", "offset"]),
            build_pagination_config(default_limit=20, modes=("offset", "page")),
        )

    def test_bounds_are_checked(self):
        with self.assertRaises(ConfigError):
            build_pagination_config(default_limit=200, max_limit=100)
        with self.assertRaises(ConfigError):
            build_pagination_config(min_limit=-1, default_limit=0)
        with self.assertRaises(ConfigError):
            build_pagination_config(default_limit="10")

    def test_modes_are_checked(self):
        with self.assertRaises(ConfigError):
            build_pagination_config(modes=[])
        with self.assertRaises(ConfigError):
            build_pagination_config(modes=["offset", "keyset"])

    def test_fragment_follows_modes(self):
        names = pagination_fragment(build_pagination_config(modes=["page", "cursor"])).names
        self.assertEqual(names, ("limit", "page", "cursor", "cursorDirection"))


class SortingConfigTests(unittest.TestCase):
    def test_field_order_is_preserved(self):
        cfg = build_sorting_config(["name", "createdAt"], default_field="createdAt")
        self.assertEqual(cfg.fields, ("name", "createdAt"))
        self.assertEqual(cfg.default_direction, "asc")

    def test_invalid_options(self):
        with self.assertRaises(ConfigError):
            build_sorting_config([])
        with self.assertRaises(ConfigError):
            build_sorting_config(["name", "name"])
        with self.assertRaises(ConfigError):
            build_sorting_config(["name"], default_field="age")
        with self.assertRaises(ConfigError):
            build_sorting_config(["name"], default_direction="up")

    def test_fragment_single_and_multi(self):
        single = sorting_fragment(build_sorting_config(["name"]))
        self.assertEqual(single.names, ("sortBy", "sortDirection"))
        self.assertIn("nullsHandling", single.reserved)

        multi = sorting_fragment(build_sorting_config(["name"], allow_multiple=True, allow_nulls_handling=True))
        self.assertEqual(multi.names, ("sortBy", "nullsHandling"))
        self.assertIn("sortDirection", multi.reserved)


class FilteringConfigTests(unittest.TestCase):
    def test_default_operators_and_routes(self):
        cfg = build_filtering_config({"age": "number", "name": ValueKind.STRING})
        self.assertIn("age", cfg.routes)
        self.assertIn("age_between", cfg.routes)
        self.assertIn("name_ilike", cfg.routes)
        self.assertIn("age_nin", cfg.routes)
        self.assertEqual(cfg.routes["age_nin"].operator, FilterOperator.NOT_IN)
        self.assertEqual(cfg.routes["age_nin"].alias, "nin")
        self.assertEqual(cfg.fields["age"].shapes[FilterOperator.BETWEEN].shape, ValueShape.PAIR)

    def test_bare_name_only_with_eq(self):
        cfg = build_filtering_config({"age": FieldFilter("number", operators=["gt", "lt"])})
        self.assertEqual(set(cfg.routes), {"age_gt", "age_lt"})

    def test_exists_alias_follows_is_not_null(self):
        cfg = build_filtering_config({"email": FieldFilter("string", operators=["eq", "exists"])})
        self.assertEqual(cfg.fields["email"].operators, frozenset({FilterOperator.EQ, FilterOperator.IS_NOT_NULL}))
        self.assertIn("email_isNotNull", cfg.routes)
        self.assertIn("email_exists", cfg.routes)

    def test_prefix_applies_to_wire_names(self):
        cfg = build_filtering_config({"age": FieldFilter("number", operators=["eq", "gt"])}, prefix="f")
        self.assertEqual(set(cfg.routes), {"f_age", "f_age_gt"})
        self.assertEqual(cfg.field_for_wire("f_age").name, "age")

    def test_illegal_operator_is_rejected(self):
        with self.assertRaises(ConfigError):
            build_filtering_config({"active": FieldFilter("boolean", operators=["gt"])})
        with self.assertRaises(ConfigError):
            build_filtering_config({"age": FieldFilter("number", operators=["regex"])})
        with self.assertRaises(ConfigError):
            build_filtering_config({"age": FieldFilter("number", operators=["approx"])})
        with self.assertRaises(ConfigError):
            build_filtering_config({"age": FieldFilter("number", operators=[])})

    def test_enum_and_array_declarations(self):
        with self.assertRaises(ConfigError):
            build_filtering_config({"status": "enum"})
        with self.assertRaises(ConfigError):
            build_filtering_config({"tags": FieldFilter("array", items="array")})
        cfg = build_filtering_config(
            {
                "status": FieldFilter("enum", values=["open", "closed"]),
                "tags": FieldFilter("array", items="string"),
            }
        )
        self.assertEqual(cfg.fields["status"].values, ("open", "closed"))
        self.assertEqual(cfg.fields["tags"].items, ValueKind.STRING)

    def test_limits_and_names(self):
        with self.assertRaises(ConfigError):
            build_filtering_config({})
        with self.assertRaises(ConfigError):
            build_filtering_config({"_secret": "string"})
        with self.assertRaises(ConfigError):
            build_filtering_config({"age": "number"}, max_depth=0)
        with self.assertRaises(ConfigError):
            build_filtering_config({"age": "number"}, max_conditions=0)
        cfg = build_filtering_config({"age": "number"})
        self.assertEqual(cfg.max_depth, 3)
        self.assertIsNone(cfg.max_conditions)

    def test_wire_name_collision_between_fields_is_rejected(self):
        with self.assertRaises(ConfigError) as ctx:
            build_filtering_config(
                {
                    "age": FieldFilter("number", operators=["gt"]),
                    "age_gt": FieldFilter("string", operators=["eq"]),
                }
            )
        self.assertIn("collision", str(ctx.exception))
        self.assertIn("age_gt", str(ctx.exception))

    def test_alias_collision_between_fields_is_rejected(self):
        with self.assertRaises(ConfigError):
            build_filtering_config(
                {
                    "price": FieldFilter("number", operators=["notIn"]),
                    "price_nin": FieldFilter("string", operators=["eq"]),
                }
            )

    def test_fragment_reserves_logical_keys_when_disabled(self):
        fragment = filtering_fragment(build_filtering_config({"age": "number"}, allow_logical_operators=False))
        self.assertNotIn("_and", fragment.names)
        self.assertEqual(fragment.reserved, frozenset({"_and", "_or"}))


class SearchConfigTests(unittest.TestCase):
    def test_defaults(self):
        cfg = build_search_config(["name"])
        self.assertEqual((cfg.min_query_length, cfg.max_query_length), (1, 500))
        self.assertEqual(cfg.modes, ("contains", "startsWith", "endsWith", "exact"))

    def test_fuzzy_mode_is_opt_in(self):
        self.assertIn("fuzzy", build_search_config(["name"], allow_fuzzy=True).modes)

    def test_invalid_options(self):
        with self.assertRaises(ConfigError):
            build_search_config(["name"], min_query_length=5, max_query_length=2)
        with self.assertRaises(ConfigError):
            build_search_config(["name"], min_query_length=-1)
        with self.assertRaises(ConfigError):
            build_search_config([], allow_field_selection=True)

    def test_fragment(self):
        fragment = search_fragment(build_search_config(["name"], allow_field_selection=True))
        self.assertEqual(fragment.names, ("query", "mode", "caseSensitive", "searchFields"))
        self.assertEqual(fragment.reserved, frozenset({"useRegex"}))


if __name__ == "__main__":
    unittest.main()
