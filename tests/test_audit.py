"""Unit tests for lamindex.processing.audit."""

from lamindex.processing.audit import audit_codes


class TestAuditCodes:
    def test_clean_index_unchanged(self, fine_oak_record):
        result = audit_codes([fine_oak_record])
        assert result.reviewed == 1
        assert not result.changed
        assert result.unresolved == []
        assert result.records == [fine_oak_record]

    def test_normalizes_case_and_spacing(self):
        records = [{"code": " y0385 ", "name": "Fine Oak"}]
        result = audit_codes(records)
        assert result.normalized == 1
        assert result.changed
        assert result.records[0]["code"] == "Y0385"

    def test_corrects_from_product_link(self):
        records = [{"code": "FINEOAK", "product-link": "https://example.com/fine-oak-y0385"}]
        result = audit_codes(records)
        assert result.corrected == 1
        assert result.records[0]["code"] == "Y0385"
        assert result.correction_sources == ["product-link"]
        assert result.unresolved == []

    def test_corrects_from_detail_record(self):
        records = [{"code": "GLACIER", "name": "Glacier"}]
        details = [{"name": "Glacier", "sku": "D354"}]
        result = audit_codes(records, details)
        assert result.records[0]["code"] == "D354"
        assert result.correction_sources == ["detail.sku"]

    def test_detail_matched_by_link(self):
        link = "https://example.com/glacier"
        records = [{"code": "GLACIER", "name": "Other name", "product-link": link}]
        details = [{"product-link": link, "code": "D354"}]
        result = audit_codes(records, details)
        assert result.records[0]["code"] == "D354"
        assert result.correction_sources == ["detail.code"]

    def test_unresolved_kept_and_reported(self):
        records = [{"code": "GLACIER", "name": "Glacier", "product-link": "https://example.com/glacier"}]
        result = audit_codes(records)
        assert len(result.records) == 1
        assert result.records[0]["code"] == "GLACIER"
        assert len(result.unresolved) == 1
        issue = result.unresolved[0]
        assert (issue.code, issue.name) == ("GLACIER", "Glacier")

    def test_duplicates_merged_after_normalizing(self):
        records = [
            {"code": "Y0385", "colors": ["Red"]},
            {"code": "y0385", "colors": ["Blue"]},
        ]
        result = audit_codes(records)
        assert len(result.records) == 1
        assert result.records[0]["colors"] == ["Red", "Blue"]
        assert result.duplicates_merged == 1
        assert result.duplicate_counts == {"Y0385": 2}

    def test_correction_creates_duplicate(self):
        records = [
            {"code": "Y0385", "name": "Fine Oak"},
            {"code": "FINEOAK", "product-link": "https://example.com/fine-oak-y0385", "colors": ["Brown"]},
        ]
        result = audit_codes(records)
        assert len(result.records) == 1
        merged = result.records[0]
        assert merged["name"] == "Fine Oak"
        assert merged["colors"] == ["Brown"]
        assert merged["product-link"] == "https://example.com/fine-oak-y0385"
