"""Unit tests for lamindex.processing.normalize."""

import pytest

from lamindex.processing.normalize import (
    clean_text,
    extract_code_candidate,
    normalize_array,
    normalize_code,
    normalize_finish,
    normalize_fragment,
    normalize_scalar,
    parse_finish,
    variant_values,
)


# ============================================================================
# clean_text / scalars / arrays
# ============================================================================
class TestCleanText:
    def test_none(self):
        assert clean_text(None) == ""

    def test_collapses_whitespace_and_nbsp(self):
        assert clean_text("  Fine\u00a0 Oak \n") == "Fine Oak"

    def test_non_string(self):
        assert clean_text(4830) == "4830"


class TestNormalizeScalar:
    def test_empty_is_none(self):
        assert normalize_scalar("   ") is None

    def test_value(self):
        assert normalize_scalar(" Laminate ") == "Laminate"


class TestNormalizeArray:
    def test_none(self):
        assert normalize_array(None) == []

    def test_scalar_becomes_list(self):
        assert normalize_array("Red") == ["Red"]

    def test_drops_empty_and_nested(self):
        assert normalize_array([" Red ", None, "", {"x": 1}, "Blue"]) == ["Red", "Blue"]

    def test_keeps_duplicates(self):
        assert normalize_array(["Red", "Red"]) == ["Red", "Red"]


# ============================================================================
# finish
# ============================================================================
class TestParseFinish:
    def test_numbered(self):
        assert parse_finish("#38 Fine Velvet") == {"code": "#38", "name": "Fine Velvet"}

    def test_numbered_without_space(self):
        assert parse_finish("#60Matte") == {"code": "#60", "name": "Matte"}

    def test_number_only(self):
        assert parse_finish("#07") == {"code": "#07"}

    def test_hash_named(self):
        assert parse_finish("#Matte") == {"name": "Matte"}

    def test_plain_name(self):
        assert parse_finish("Gloss") == {"name": "Gloss"}

    def test_empty(self):
        assert parse_finish("  ") == {}


class TestNormalizeFinish:
    def test_list_of_labels_and_dicts(self):
        out = normalize_finish(["#38 Fine Velvet", {"code": "#60", "name": " Matte "}])
        assert out == [
            {"code": "#38", "name": "Fine Velvet"},
            {"code": "#60", "name": "Matte"},
        ]

    def test_legacy_map(self):
        out = normalize_finish({"#60": {"code": "#60", "name": "Matte"}})
        assert out == [{"code": "#60", "name": "Matte"}]

    def test_single_entry_dict(self):
        assert normalize_finish({"name": "Gloss"}) == [{"name": "Gloss"}]

    def test_single_label(self):
        assert normalize_finish("#38 Fine Velvet") == [{"code": "#38", "name": "Fine Velvet"}]

    def test_drops_empty_entries(self):
        assert normalize_finish([{"code": "", "name": ""}, None, 5]) == []

    def test_none(self):
        assert normalize_finish(None) == []


# ============================================================================
# codes
# ============================================================================
class TestNormalizeCode:
    def test_upper_and_whitespace(self):
        assert normalize_code(" y 0385 ") == "Y0385"

    def test_ellipsis(self):
        assert normalize_code("ab\u2026") == "AB..."

    def test_none(self):
        assert normalize_code(None) == ""


class TestExtractCodeCandidate:
    def test_last_token(self):
        assert extract_code_candidate("Fine Oak Y0385") == "Y0385"

    def test_hyphenated_token(self):
        assert extract_code_candidate("sku abc-1234") == "ABC-1234"

    def test_short_prefix_not_joined(self):
        assert extract_code_candidate("sku ab-1234") == "1234"

    def test_nothing(self):
        assert extract_code_candidate("a b") is None
        assert extract_code_candidate(None) is None


# ============================================================================
# fragments
# ============================================================================
class TestNormalizeFragment:
    def test_alias_arrays_fold_into_canonical(self):
        out = normalize_fragment({"Color": "Red", "colors": ["Red", "Blue"]})
        assert out == {"colors": ["Red", "Blue"]}

    def test_scalars_and_code(self):
        out = normalize_fragment({
            "code": " y0385",
            "product_link": " https://example.com/fine-oak-y0385 ",
            "name": "Fine\u00a0Oak",
        })
        assert out == {
            "code": "Y0385",
            "product-link": "https://example.com/fine-oak-y0385",
            "name": "Fine Oak",
        }

    def test_finish_labels(self):
        out = normalize_fragment({"finish": ["#38 Fine Velvet"]})
        assert out["finish"] == [{"code": "#38", "name": "Fine Velvet"}]

    def test_no_repeat_coerced(self):
        assert normalize_fragment({"no_repeat": "yes"})["no_repeat"] is True
        assert normalize_fragment({"no_repeat": "false"})["no_repeat"] is False
        assert "no_repeat" not in normalize_fragment({"no_repeat": "maybe"})

    def test_unknown_keys_pass_through(self):
        out = normalize_fragment({"sheet_sizes": ["4' x 8'"], "sku": " Y0385 "})
        assert out["sheet_sizes"] == ["4' x 8'"]
        assert out["sku"] == "Y0385"

    def test_none_values_dropped(self):
        assert normalize_fragment({"name": None, "colors": None}) == {}


class TestVariantValues:
    def test_collects_all_spellings(self, legacy_record):
        rec = dict(legacy_record, colors=["Grey"])
        assert variant_values(rec, "colors") == ["Grey", "White"]

    def test_scalar_value(self):
        assert variant_values({"color": "Red"}, "colors") == ["Red"]
