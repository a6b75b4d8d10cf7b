"""
Validation of extracted records against ground truth spreadsheets.

Vendors are matched by bidirectional substring containment of normalized
names, which tolerates abbreviations and legal-entity suffixes on either
side ("ACME" matches "ACME LTDA"). Ground truth sets are searched in
priority order and only the first set with a match is consulted, even when
that match is divergent.
"""

from collections import Counter
from typing import Optional

from .config import AMOUNT_TOLERANCE, logger
from .parsing import normalize_vendor
from .schemas import (
    BasicInvoiceData,
    ExtractionRecord,
    GroundTruthRecord,
    GroundTruthSet,
    SuccessRecord,
    Verdict,
    VerdictStatus,
    VerdictSummary,
)


def vendors_match(extracted: str, truth: str) -> bool:
    """True when either normalized vendor name contains the other."""
    extracted, truth = normalize_vendor(extracted), normalize_vendor(truth)
    if not extracted or not truth:
        return False
    return truth in extracted or extracted in truth


def find_match(vendor: str, truth_set: GroundTruthSet) -> Optional[GroundTruthRecord]:
    """First record of the set whose vendor matches, in sheet order."""
    for record in truth_set.records:
        if vendors_match(vendor, record.vendor):
            return record
    return None


def validate_record(
    data: BasicInvoiceData,
    truth_sets: list[GroundTruthSet],
    tolerance: float = AMOUNT_TOLERANCE,
) -> Verdict:
    """
    Compare one extracted payload with ground truth sets in priority order.

    Returns:
        OK when the first match is within tolerance, Divergent with the
        expected amount otherwise, NotFound when no set matches
    """
    for truth_set in truth_sets:
        match = find_match(data.vendor, truth_set)
        if match is None:
            continue

        if abs(data.net_amount - match.amount) <= tolerance:
            return Verdict(status=VerdictStatus.OK, source=truth_set.label)
        return Verdict(
            status=VerdictStatus.DIVERGENT,
            source=truth_set.label,
            expected_amount=match.amount,
        )

    return Verdict(status=VerdictStatus.NOT_FOUND)


def validate_records(
    records: list[ExtractionRecord],
    truth_sets: list[GroundTruthSet],
    tolerance: float = AMOUNT_TOLERANCE,
) -> dict[str, Verdict]:
    """
    Produce a verdict for every successful basic extraction record.

    Only ground truth sets that loaded successfully take part, in the order
    given. Records that failed, are still in flight, or carry the detailed
    field set get no verdict.

    Returns:
        Mapping from record id to Verdict
    """
    ready = [s for s in truth_sets if s.is_ready]
    if len(ready) < len(truth_sets):
        logger.warning(f"Ignoring {len(truth_sets) - len(ready)} ground truth set(s) that failed to load")

    verdicts: dict[str, Verdict] = {}
    for record in records:
        if not isinstance(record, SuccessRecord) or not isinstance(record.data, BasicInvoiceData):
            continue
        verdicts[record.id] = validate_record(record.data, ready, tolerance)

    summary = summarize_verdicts(verdicts)
    logger.info(
        f"Validation complete: {summary.ok} OK, {summary.divergent} divergent, "
        f"{summary.not_found} not found"
    )
    return verdicts


def summarize_verdicts(verdicts: dict[str, Verdict]) -> VerdictSummary:
    counts = Counter(v.status for v in verdicts.values())
    return VerdictSummary(
        ok=counts[VerdictStatus.OK],
        divergent=counts[VerdictStatus.DIVERGENT],
        not_found=counts[VerdictStatus.NOT_FOUND],
    )


def format_verdict_text(
    summary: VerdictSummary,
    records: list[ExtractionRecord],
    verdicts: dict[str, Verdict],
) -> str:
    """
    Format validation results as human-readable text for CLI output.
    """
    lines = [
        "=" * 50,
        "VALIDATION SUMMARY",
        "=" * 50,
        f"Records validated:        {summary.ok + summary.divergent + summary.not_found}",
        f"OK:                       {summary.ok}",
        f"Divergent:                {summary.divergent}",
        f"Not found:                {summary.not_found}",
        "",
    ]

    divergent = [
        r for r in records
        if r.id in verdicts and verdicts[r.id].status == VerdictStatus.DIVERGENT
    ]
    if divergent:
        lines.append("Divergent Records:")
        lines.append("-" * 40)
        for record in divergent:
            verdict = verdicts[record.id]
            lines.append(
                f"  {record.file_name} p{record.page_number}: "
                f"{record.data.net_amount:,.2f} vs {verdict.expected_amount:,.2f} ({verdict.source})"
            )
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)
