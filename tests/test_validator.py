"""
Tests for vendor matching and verdicts against ground truth sets.
"""

import pytest

from invoice_batch.schemas import (
    BasicInvoiceData,
    DetailedInvoiceData,
    ErrorRecord,
    GroundTruthRecord,
    GroundTruthSet,
    GroundTruthStatus,
    PendingRecord,
    SuccessRecord,
    VerdictStatus,
)
from invoice_batch.validator import (
    format_verdict_text,
    summarize_verdicts,
    validate_record,
    validate_records,
    vendors_match,
)


def truth(label: str, *rows: tuple[str, float]) -> GroundTruthSet:
    return GroundTruthSet(
        label=label,
        status=GroundTruthStatus.SUCCESS,
        records=[GroundTruthRecord(vendor=v, amount=a) for v, a in rows],
    )


def success(record_id: str, vendor: str, amount: float) -> SuccessRecord:
    return SuccessRecord(
        id=record_id,
        file_name=f"{record_id}.pdf",
        page_number=1,
        data=BasicInvoiceData(vendor=vendor, invoice_number="1", issue_date="2024-01-01", net_amount=amount),
    )


# ============================================================================
# Vendor Matching
# ============================================================================

class TestVendorsMatch:

    def test_extracted_contains_truth(self):
        assert vendors_match("ACME LTDA", "acme")

    def test_truth_contains_extracted(self):
        assert vendors_match("Acme", "ACME SERVICOS LTDA")

    def test_case_and_whitespace_ignored(self):
        assert vendors_match("  acme ltda ", "ACME LTDA")

    def test_unrelated(self):
        assert not vendors_match("ACME", "Beta")

    def test_blank_never_matches(self):
        assert not vendors_match("", "ACME")
        assert not vendors_match("ACME", "   ")


# ============================================================================
# Verdicts
# ============================================================================

class TestValidateRecord:

    def test_ok_within_tolerance(self):
        data = success("r", "ACME LTDA", 100.005).data
        verdict = validate_record(data, [truth("Payable", ("ACME", 100.0))])

        assert verdict.status == VerdictStatus.OK
        assert verdict.source == "Payable"
        assert verdict.expected_amount is None

    def test_divergent_reports_expected_amount(self):
        data = success("r", "ACME LTDA", 100.0).data
        verdict = validate_record(data, [truth("Payable", ("ACME", 120.0))])

        assert verdict.status == VerdictStatus.DIVERGENT
        assert verdict.expected_amount == 120.0

    def test_not_found(self):
        data = success("r", "Unknown Corp", 100.0).data
        verdict = validate_record(data, [truth("Payable", ("ACME", 100.0))])

        assert verdict.status == VerdictStatus.NOT_FOUND
        assert verdict.source == ""

    def test_first_matching_set_decides(self):
        data = success("r", "ACME", 100.0).data
        sets = [
            truth("Payable", ("ACME LTDA", 120.0)),
            truth("Paid", ("ACME LTDA", 100.0)),
        ]
        verdict = validate_record(data, sets)

        assert verdict.status == VerdictStatus.DIVERGENT
        assert verdict.source == "Payable"
        assert verdict.expected_amount == 120.0

    def test_divergent_first_set_wins_over_ok_in_second(self):
        data = success("r", "ACME LTDA", 100.0).data
        sets = [truth("First", ("ACME", 99.0)), truth("Second", ("ACME LTDA", 100.0))]
        verdict = validate_record(data, sets)

        assert verdict.status == VerdictStatus.DIVERGENT
        assert verdict.source == "First"
        assert verdict.expected_amount == 99.0

    def test_falls_through_to_next_set(self):
        data = success("r", "ACME", 100.0).data
        sets = [truth("Payable", ("Beta", 1.0)), truth("Paid", ("ACME LTDA", 100.0))]
        assert validate_record(data, sets).source == "Paid"

    def test_first_matching_row_within_set(self):
        data = success("r", "ACME", 50.0).data
        verdict = validate_record(data, [truth("Payable", ("ACME", 50.0), ("ACME", 70.0))])
        assert verdict.status == VerdictStatus.OK


class TestValidateRecords:

    def test_only_successful_basic_records(self):
        detailed = SuccessRecord(
            id="d", file_name="d.pdf", page_number=1,
            data=DetailedInvoiceData(
                invoice_number="1", issue_date="2024-01-01",
                vendor_tax_id="", vendor_legal_name="ACME", customer_tax_id="", customer_legal_name="",
                place_of_service="", place_of_tax_incidence="", service_code="",
                gross_total=100, service_tax_rate=0, social_security_withholding=0, tax_withheld=0,
            ),
        )
        records = [
            success("ok", "ACME", 100.0),
            ErrorRecord(id="e", file_name="e.pdf", page_number=1, error="boom"),
            PendingRecord(id="p", file_name="p.pdf", page_number=1),
            detailed,
        ]
        verdicts = validate_records(records, [truth("Payable", ("ACME", 100.0))])
        assert list(verdicts) == ["ok"]

    def test_failed_sets_ignored(self):
        failed = GroundTruthSet(
            label="Broken",
            status=GroundTruthStatus.ERROR,
            records=[GroundTruthRecord(vendor="ACME", amount=1.0)],
        )
        verdicts = validate_records([success("r", "ACME", 100.0)], [failed, truth("Paid", ("ACME", 100.0))])
        assert verdicts["r"].source == "Paid"

    def test_no_ready_sets_means_not_found(self):
        verdicts = validate_records([success("r", "ACME", 100.0)], [GroundTruthSet(label="Idle")])
        assert verdicts["r"].status == VerdictStatus.NOT_FOUND


class TestSummary:

    @pytest.fixture
    def validated(self):
        records = [
            success("a", "ACME", 100.0),
            success("b", "Beta", 50.0),
            success("c", "Gamma", 10.0),
        ]
        sets = [truth("Payable", ("ACME", 100.0), ("Beta", 60.0))]
        return records, validate_records(records, sets)

    def test_counts(self, validated):
        _, verdicts = validated
        summary = summarize_verdicts(verdicts)
        assert (summary.ok, summary.divergent, summary.not_found) == (1, 1, 1)

    def test_text_lists_divergent_records(self, validated):
        records, verdicts = validated
        text = format_verdict_text(summarize_verdicts(verdicts), records, verdicts)
        assert "VALIDATION SUMMARY" in text
        assert "b.pdf p1: 50.00 vs 60.00 (Payable)" in text
