import unittest

from querycontract.core.errors import FieldErrorKind
from querycontract.services.composer import compose
from querycontract.services.sorting import build_sorting_config
from querycontract.services.validator import validate


def _kinds(result):
    return [(err.key, err.kind) for err in result.errors]


class SingleSortTests(unittest.TestCase):
    def setUp(self):
        self.contract = compose(sorting=build_sorting_config(["name", "createdAt"], default_field="createdAt"))

    def test_defaults(self):
        value = validate(self.contract, {}).unwrap()
        self.assertEqual((value.sort_by, value.sort_direction), ("createdAt", "asc"))

    def test_explicit_sort(self):
        value = validate(self.contract, {"sortBy": "name", "sortDirection": "DESC"}).unwrap()
        self.assertEqual((value.sort_by, value.sort_direction), ("name", "desc"))

    def test_unknown_sort_field(self):
        result = validate(self.contract, {"sortBy": "password"})
        self.assertEqual(_kinds(result), [("sortBy", FieldErrorKind.UNKNOWN_FIELD)])

    def test_list_rejected_in_single_mode(self):
        result = validate(self.contract, {"sortBy": ["name", "createdAt"]})
        self.assertEqual(_kinds(result), [("sortBy", FieldErrorKind.TYPE_MISMATCH)])

    def test_bad_direction(self):
        result = validate(self.contract, {"sortDirection": "sideways"})
        self.assertEqual(_kinds(result), [("sortDirection", FieldErrorKind.TYPE_MISMATCH)])

    def test_nulls_handling_not_enabled(self):
        result = validate(self.contract, {"nullsHandling": "first"})
        self.assertEqual(_kinds(result), [("nullsHandling", FieldErrorKind.UNKNOWN_FIELD)])

    def test_nulls_handling_reserved_even_when_not_strict(self):
        contract = compose(sorting=build_sorting_config(["name"]), strict=False)
        result = validate(contract, {"nullsHandling": "first"})
        self.assertEqual(_kinds(result), [("nullsHandling", FieldErrorKind.UNKNOWN_FIELD)])


class MultiSortTests(unittest.TestCase):
    def setUp(self):
        self.contract = compose(
            sorting=build_sorting_config(
                ["name", "createdAt", "age"],
                default_field="createdAt",
                default_direction="desc",
                allow_multiple=True,
                allow_nulls_handling=True,
            )
        )

    def _sort(self, raw):
        value = validate(self.contract, raw).unwrap()
        return [(clause.field, clause.direction) for clause in value.sort_by]

    def test_default_is_single_clause(self):
        self.assertEqual(self._sort({}), [("createdAt", "desc")])

    def test_accepted_forms(self):
        expected = [("name", "asc"), ("age", "desc")]
        self.assertEqual(self._sort({"sortBy": [{"field": "name", "direction": "asc"}, {"field": "age", "direction": "desc"}]}), expected)
        self.assertEqual(self._sort({"sortBy": "name:asc,age:desc"}), expected)
        self.assertEqual(self._sort({"sortBy": ["name:asc", "-age"]}), expected)
        self.assertEqual(
            self._sort({"sortBy": '[{"field": "name", "direction": "asc"}, {"field": "age", "direction": "desc"}]'}),
            expected,
        )

    def test_missing_direction_uses_default(self):
        self.assertEqual(self._sort({"sortBy": "name"}), [("name", "desc")])

    def test_every_element_is_checked(self):
        result = validate(self.contract, {"sortBy": ["name:up", "secret", "age"]})
        self.assertEqual(
            _kinds(result),
            [("sortBy[0]", FieldErrorKind.TYPE_MISMATCH), ("sortBy[1]", FieldErrorKind.UNKNOWN_FIELD)],
        )

    def test_repeated_field_rejected(self):
        result = validate(self.contract, {"sortBy": "name:asc,name:desc"})
        self.assertEqual(_kinds(result), [("sortBy[1]", FieldErrorKind.TYPE_MISMATCH)])

    def test_sort_direction_is_not_a_key_in_multi_mode(self):
        result = validate(self.contract, {"sortDirection": "asc"})
        self.assertEqual(_kinds(result), [("sortDirection", FieldErrorKind.UNKNOWN_FIELD)])

    def test_nulls_handling(self):
        value = validate(self.contract, {"nullsHandling": "last"}).unwrap()
        self.assertEqual(value.nulls_handling, "last")
        result = validate(self.contract, {"nullsHandling": "middle"})
        self.assertEqual(_kinds(result), [("nullsHandling", FieldErrorKind.TYPE_MISMATCH)])

    def test_wire_form_uses_camel_case(self):
        wire = validate(self.contract, {"sortBy": "name"}).unwrap().to_wire()
        self.assertEqual(wire, {"sortBy": [{"field": "name", "direction": "desc"}]})


if __name__ == "__main__":
    unittest.main()
