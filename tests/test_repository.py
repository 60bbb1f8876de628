"""Unit tests for lamindex.storage.repository - persistence and run store."""

import pytest

from lamindex.errors import PersistenceError
from lamindex.storage.repository import (
    ProductStore,
    by_code,
    clear_carousel_texture_urls,
    load_all,
    read_json_array,
    save_all,
    update_details_from_index,
    write_merged,
)


# ============================================================================
# load / save
# ============================================================================
class TestLoadSave:
    def test_round_trip(self, index_path, fine_oak_record, legacy_record):
        records = [fine_oak_record, legacy_record, {"code": "4830", "name": "Caf\u00e9 Walnut"}]
        save_all(records, index_path)
        assert load_all(index_path) == records
        assert not index_path.with_suffix(".json.tmp").exists()

    def test_output_is_pretty_utf8(self, index_path):
        save_all([{"code": "4830", "name": "Caf\u00e9"}], index_path)
        text = index_path.read_text(encoding="utf-8")
        assert "Caf\u00e9" in text
        assert text.startswith("[\n  {")

    def test_missing_file_is_empty(self, index_path):
        assert load_all(index_path) == []

    def test_corrupt_file_is_empty(self, index_path):
        index_path.write_text("[{not json", encoding="utf-8")
        assert load_all(index_path) == []

    def test_non_list_root_is_empty(self, index_path, write_json):
        write_json(index_path, {"code": "Y0385"})
        assert load_all(index_path) == []

    def test_read_json_array_is_strict(self, index_path, write_json):
        index_path.write_text("[{not json", encoding="utf-8")
        with pytest.raises(ValueError):
            read_json_array(index_path)
        write_json(index_path, {"code": "Y0385"})
        with pytest.raises(ValueError):
            read_json_array(index_path)

    def test_read_json_array_skips_non_objects(self, index_path, write_json):
        write_json(index_path, [{"code": "Y0385"}, "junk", 3])
        assert read_json_array(index_path) == [{"code": "Y0385"}]

    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "index.json"
        save_all([], path)
        assert load_all(path) == []

    def test_failed_write_raises_and_cleans_tmp(self, tmp_path):
        target = tmp_path / "index.json"
        target.mkdir()
        (target / "keep").write_text("x", encoding="utf-8")
        with pytest.raises(PersistenceError) as exc_info:
            save_all([{"code": "Y0385"}], target)
        assert exc_info.value.path == target
        assert not (tmp_path / "index.json.tmp").exists()
        assert (target / "keep").exists()


class TestByCode:
    def test_first_wins(self):
        a, b = {"code": "Y0385", "n": 1}, {"code": "Y0385", "n": 2}
        assert by_code([a, b, {"name": "no code"}]) == {"Y0385": a}


# ============================================================================
# write_merged
# ============================================================================
class TestWriteMerged:
    def test_union_with_existing(self, index_path, write_json, read_json):
        write_json(index_path, [
            {"code": "y0385", "name": "Fine Oak", "colors": ["Brown"]},
            {"code": "D354", "name": "Glacier"},
        ])
        current = {
            "Y0385": {"code": "Y0385", "name": "Other", "colors": ["Beige"]},
            "4830": {"code": "4830", "name": "Walnut"},
        }
        merged = write_merged(current, index_path)
        on_disk = read_json(index_path)
        assert on_disk == merged
        assert [r["code"] for r in on_disk] == ["Y0385", "D354", "4830"]
        assert on_disk[0]["name"] == "Fine Oak"
        assert on_disk[0]["colors"] == ["Brown", "Beige"]

    def test_existing_duplicates_collapsed(self, index_path, write_json, read_json):
        write_json(index_path, [
            {"code": "Y0385", "colors": ["Brown"]},
            {"code": "y0385", "colors": ["Beige"]},
        ])
        write_merged({}, index_path)
        on_disk = read_json(index_path)
        assert len(on_disk) == 1
        assert on_disk[0]["colors"] == ["Brown", "Beige"]

    def test_stored_code_whitespace_matches_run_code(self, index_path, write_json, read_json):
        write_json(index_path, [{"code": "y0385 ", "name": "Fine Oak"}])
        write_merged({"Y0385": {"code": "Y0385", "colors": ["Beige"]}}, index_path)
        on_disk = read_json(index_path)
        assert [r["code"] for r in on_disk] == ["Y0385"]
        assert on_disk[0]["name"] == "Fine Oak"
        assert on_disk[0]["colors"] == ["Beige"]

    def test_limit_fields(self, index_path, write_json, read_json):
        write_json(index_path, [{"code": "Y0385", "name": "Fine Oak"}])
        current = {
            "Y0385": {"code": "Y0385", "description": "Oak", "finish": [{"name": "Matte"}]},
            "4830": {"code": "4830", "name": "Walnut", "description": "Dark", "finish": [{"name": "Gloss"}]},
        }
        write_merged(current, index_path, limit_fields=["finish"])
        on_disk = {r["code"]: r for r in read_json(index_path)}
        assert on_disk["Y0385"] == {"code": "Y0385", "name": "Fine Oak", "finish": [{"name": "Matte"}]}
        assert on_disk["4830"] == {"code": "4830", "name": "Walnut", "finish": [{"name": "Gloss"}]}

    def test_rerun_is_byte_identical(self, index_path):
        current = {"Y0385": {"code": "Y0385", "name": "Fine Oak", "colors": ["Brown"]}}
        write_merged(current, index_path)
        first = index_path.read_bytes()
        write_merged(current, index_path)
        assert index_path.read_bytes() == first


# ============================================================================
# ProductStore
# ============================================================================
class TestProductStore:
    def test_add_value_finish_dedup(self):
        store = ProductStore()
        store.add_value("y0385", "finish", "#38 Fine Velvet")
        store.add_value("Y0385", "finish", "#38  Fine Velvet")
        assert store.get("Y0385")["finish"] == [{"code": "#38", "name": "Fine Velvet"}]

    def test_add_value_arrays_and_scalars(self):
        store = ProductStore()
        store.add_value("Y0385", "color", "Brown")
        store.add_value("Y0385", "colors", "Brown")
        store.add_value("Y0385", "description", "Oak")
        store.add_value("Y0385", "description", "Other")
        store.add_value("Y0385", "shade", "  ")
        rec = store.get("Y0385")
        assert rec["colors"] == ["Brown"]
        assert rec["description"] == "Oak"
        assert "shade" not in rec

    def test_ensure_keeps_first_name(self):
        store = ProductStore()
        store.ensure("Y0385", name="Fine Oak", link="https://example.com/a")
        store.ensure("Y0385", name="Other", link="https://example.com/b")
        rec = store.get("Y0385")
        assert rec["name"] == "Fine Oak"
        assert rec["product-link"] == "https://example.com/a"
        assert len(store) == 1
        assert "Y0385" in store

    def test_merge_fragment(self):
        store = ProductStore()
        store.merge_fragment({"code": "y0385", "colors": ["Brown"]})
        store.merge_fragment({"code": "Y0385", "colors": ["Beige"], "name": "Fine Oak"})
        assert store.get("Y0385") == {"code": "Y0385", "colors": ["Brown", "Beige"], "name": "Fine Oak"}

    def test_merge_fragment_requires_code(self):
        with pytest.raises(ValueError):
            ProductStore().merge_fragment({"name": "Glacier"})

    def test_records_are_finalized(self):
        store = ProductStore()
        store.merge_fragment({"code": "Y0385", "name": "Fine Oak"})
        assert store.records() == {"Y0385": {"code": "Y0385", "surface-group": "Laminate", "name": "Fine Oak"}}

    def test_flush(self, index_path, read_json):
        store = ProductStore()
        store.merge_fragment({"code": "Y0385", "name": "Fine Oak"})
        store.flush(index_path)
        assert read_json(index_path) == [{"code": "Y0385", "name": "Fine Oak", "surface-group": "Laminate"}]


# ============================================================================
# detail maintenance
# ============================================================================
class TestDetails:
    def test_update_details_from_index(self):
        index = [
            {"code": "Y0385", "name": "Fine Oak", "colors": ["Brown"]},
            {"code": "D354", "name": "Glacier"},
        ]
        details = [{"code": "Y0385", "name": "", "texture_image_url": "https://cdn.example.com/y.jpg"}]
        out = update_details_from_index(index, details)
        assert out[0] == {
            "code": "Y0385",
            "name": "Fine Oak",
            "texture_image_url": "https://cdn.example.com/y.jpg",
            "colors": ["Brown"],
        }
        assert out[1] == {"code": "D354", "name": "Glacier"}

    def test_clear_carousel_texture_urls(self):
        details = [
            {"code": "Y0385", "texture_image_url": "https://cdn.example.com/Carousel/y.jpg",
             "texture_image_pixels": {"width": 10, "height": 10}},
            {"code": "D354", "texture_image_url": "https://cdn.example.com/d.jpg"},
        ]
        assert clear_carousel_texture_urls(details) == ["Y0385"]
        assert details[0] == {"code": "Y0385"}
        assert "texture_image_url" in details[1]
