"""
Tests for the command-line interface.

The state store, the rasterizer and the AI client are replaced with fakes.
"""

import json
from datetime import date

import openpyxl
import pytest
from typer.testing import CliRunner

from invoice_batch import cli
from invoice_batch.config import DAILY_EXTRACTION_LIMIT, QUOTA_STORE_KEY
from invoice_batch.exceptions import ConfigurationError
from invoice_batch.schemas import RECORDS_ADAPTER, BasicInvoiceData, ErrorRecord, SuccessRecord

from conftest import FakeExtractor, FakeRasterizer, InMemoryStore

runner = CliRunner()


class FakeGemini:
    extractor = FakeExtractor()

    @classmethod
    def from_env(cls):
        return cls.extractor


@pytest.fixture
def state(monkeypatch) -> InMemoryStore:
    store = InMemoryStore()
    monkeypatch.setattr(cli, "get_store", lambda: store)
    monkeypatch.setattr(cli, "GeminiExtractor", FakeGemini)
    monkeypatch.setattr(cli, "PdfRasterizer", lambda: FakeRasterizer(page_counts={"b.pdf": 2}))
    return store


@pytest.fixture
def pdf_dir(tmp_path):
    folder = tmp_path / "invoices"
    folder.mkdir()
    (folder / "a.pdf").write_bytes(b"%PDF a")
    (folder / "b.pdf").write_bytes(b"%PDF b")
    return folder


def write_records(path, records):
    path.write_bytes(RECORDS_ADAPTER.dump_json(records))


def success(record_id: str, vendor: str, amount: float) -> SuccessRecord:
    return SuccessRecord(
        id=record_id,
        file_name=f"{record_id}.pdf",
        page_number=1,
        data=BasicInvoiceData(vendor=vendor, invoice_number="1", issue_date="2024-01-01", net_amount=amount),
    )


class TestExtractCommand:

    def test_extract_first_pages(self, state, pdf_dir, tmp_path):
        output = tmp_path / "records.json"
        result = runner.invoke(cli.app, ["extract", "--pdf-dir", str(pdf_dir), "--output", str(output)])

        assert result.exit_code == 0, result.output
        records = RECORDS_ADAPTER.validate_json(output.read_bytes())
        assert [(r.file_name, r.status) for r in records] == [("a.pdf", "success"), ("b.pdf", "success")]
        assert records[1].total_pages == 2
        assert json.loads(state.data[QUOTA_STORE_KEY])["count"] == 2
        assert "Added to history as: Extraction: invoices" in result.output

    def test_extract_all_pages(self, state, pdf_dir, tmp_path):
        output = tmp_path / "records.json"
        result = runner.invoke(
            cli.app,
            ["extract", "--pdf-dir", str(pdf_dir), "--output", str(output), "--all-pages", "--no-save"],
        )

        assert result.exit_code == 0, result.output
        records = RECORDS_ADAPTER.validate_json(output.read_bytes())
        assert [(r.file_name, r.page_number) for r in records] == [("a.pdf", 1), ("b.pdf", 1), ("b.pdf", 2)]
        assert "history" not in result.output

    def test_missing_api_key(self, state, pdf_dir, monkeypatch):
        class Unconfigured:
            @classmethod
            def from_env(cls):
                raise ConfigurationError("GEMINI_API_KEY environment variable not set")

        monkeypatch.setattr(cli, "GeminiExtractor", Unconfigured)
        result = runner.invoke(cli.app, ["extract", "--pdf-dir", str(pdf_dir)])

        assert result.exit_code == 1
        assert "GEMINI_API_KEY" in result.output

    def test_quota_exhausted(self, state, pdf_dir):
        state.data[QUOTA_STORE_KEY] = json.dumps(
            {"date": date.today().isoformat(), "count": DAILY_EXTRACTION_LIMIT}
        )
        result = runner.invoke(cli.app, ["extract", "--pdf-dir", str(pdf_dir)])

        assert result.exit_code == 1
        assert "Try again tomorrow" in result.output

    def test_unknown_layout(self, state, pdf_dir):
        result = runner.invoke(cli.app, ["extract", "--pdf-dir", str(pdf_dir), "--layout", "nope"])
        assert result.exit_code == 1
        assert "Unknown layout" in result.output

    def test_empty_folder(self, state, tmp_path):
        result = runner.invoke(cli.app, ["extract", "--pdf-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "No PDF files found" in result.output


class TestValidateCommand:

    @pytest.fixture
    def sheet(self, tmp_path):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(["Razão Social", "Valor Pagto R$"])
        ws.append(["ACME LTDA", "R$ 100,00"])
        ws.append(["Beta", "R$ 60,00"])
        path = tmp_path / "contas.xlsx"
        wb.save(path)
        return path

    def test_validate_writes_report(self, sheet, tmp_path):
        records_file = tmp_path / "records.json"
        report = tmp_path / "report.json"
        write_records(records_file, [success("a", "ACME", 100.0), success("b", "Beta", 50.0)])

        result = runner.invoke(cli.app, [
            "validate",
            "--input", str(records_file),
            "--ground-truth", f"{sheet}=Razão Social,Valor Pagto R$,Payable",
            "--report", str(report),
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(report.read_text(encoding="utf-8"))
        assert data["summary"] == {"ok": 1, "divergent": 1, "not_found": 0}
        assert data["verdicts"]["b"] == {"status": "Divergent", "source": "Payable", "expected_amount": 60.0}

    def test_wrong_columns_reported(self, sheet, tmp_path):
        records_file = tmp_path / "records.json"
        write_records(records_file, [success("a", "ACME", 100.0)])

        result = runner.invoke(cli.app, [
            "validate",
            "--input", str(records_file),
            "--ground-truth", f"{sheet}=Fornecedor,Valor",
            "--report", str(tmp_path / "report.json"),
        ])

        assert result.exit_code == 1
        assert "Detected columns: Razão Social, Valor Pagto R$" in result.output

    def test_malformed_option(self, tmp_path):
        records_file = tmp_path / "records.json"
        write_records(records_file, [])
        result = runner.invoke(cli.app, ["validate", "--input", str(records_file), "--ground-truth", "contas.xlsx"])
        assert result.exit_code != 0


class TestCorrectCommand:

    def test_correct_amount(self, tmp_path):
        records_file = tmp_path / "records.json"
        write_records(records_file, [success("a", "ACME", 100.0)])

        result = runner.invoke(cli.app, [
            "correct", "--input", str(records_file), "--record-id", "a", "--net-amount", "120.5",
        ])

        assert result.exit_code == 0, result.output
        records = RECORDS_ADAPTER.validate_json(records_file.read_bytes())
        assert records[0].data.net_amount == 120.5
        assert records[0].data.vendor == "ACME"

    def test_error_record_not_editable(self, tmp_path):
        records_file = tmp_path / "records.json"
        write_records(records_file, [ErrorRecord(id="e", file_name="e.pdf", page_number=1, error="boom")])

        result = runner.invoke(cli.app, ["correct", "--input", str(records_file), "--record-id", "e", "--vendor", "X"])
        assert result.exit_code == 1

    def test_unknown_record(self, tmp_path):
        records_file = tmp_path / "records.json"
        write_records(records_file, [])
        result = runner.invoke(cli.app, ["correct", "--input", str(records_file), "--record-id", "x"])
        assert result.exit_code == 1
        assert "Record not found" in result.output


class TestStateCommands:

    def test_quota(self, state):
        result = runner.invoke(cli.app, ["quota"])
        assert result.exit_code == 0
        assert f"Today: 0 / {DAILY_EXTRACTION_LIMIT}" in result.output

    def test_layouts_add_list_remove(self, state):
        result = runner.invoke(cli.app, ["layouts", "add", "--name", "Net", "--prompt", "Use the net value"])
        assert result.exit_code == 0
        layout_id = result.output.strip().rsplit(" ", 1)[-1]

        listing = runner.invoke(cli.app, ["layouts", "list"])
        assert "Use the net value" in listing.output

        assert runner.invoke(cli.app, ["layouts", "remove", layout_id]).exit_code == 0
        assert runner.invoke(cli.app, ["layouts", "remove", layout_id]).exit_code == 1

    def test_history_after_extract(self, state, pdf_dir, tmp_path):
        runner.invoke(cli.app, ["extract", "--pdf-dir", str(pdf_dir), "--output", str(tmp_path / "r.json")])

        listing = runner.invoke(cli.app, ["history", "list"])
        assert "Extraction: invoices" in listing.output
        item_id = listing.output.split("\t", 1)[0]

        shown = runner.invoke(cli.app, ["history", "show", item_id])
        assert "a.pdf | ACME LTDA" in shown.output

        assert runner.invoke(cli.app, ["history", "delete", item_id]).exit_code == 0
        assert "No saved extractions" in runner.invoke(cli.app, ["history", "list"]).output

    def test_version(self):
        result = runner.invoke(cli.app, ["version"])
        assert result.exit_code == 0
        assert "Invoice Batch v" in result.output
