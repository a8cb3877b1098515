"""
Tests for the command-line interface.
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from invoice_audit.cli import app
from invoice_audit.extractor import ExtractionError


runner = CliRunner()


@pytest.fixture
def paths(tmp_path):
    return {
        "history": tmp_path / "history.json",
        "reports": tmp_path / "reports",
    }


@pytest.fixture
def text_file(tmp_path, sample_text):
    path = tmp_path / "acme.txt"
    path.write_text(sample_text, encoding="utf-8")
    return path


def run_process(paths, *args):
    return runner.invoke(app, [
        "process",
        "--history", str(paths["history"]),
        "--reports-dir", str(paths["reports"]),
        *args,
    ])


class TestProcess:
    """Tests for the process command."""

    def test_process_text_file(self, paths, text_file):
        result = run_process(paths, "--text-file", str(text_file))

        assert result.exit_code == 0, result.output
        assert "INVOICE DISCREPANCY REPORT" in result.output
        assert "NO DISCREPANCIES" in result.output
        assert "[OK] Report saved to:" in result.output
        assert "[OK] Added to history as: inv_" in result.output
        assert (paths["reports"] / "acme.txt_report.json").exists()

        history = json.loads(paths["history"].read_text(encoding="utf-8"))
        assert len(history["invoices"]) == 1
        assert "widget large" in history["item_averages"]

    def test_no_save(self, paths, text_file):
        result = run_process(paths, "--text-file", str(text_file), "--no-save")

        assert result.exit_code == 0
        assert "Added to history" not in result.output
        assert not paths["history"].exists()

    def test_fail_on_discrepancy(self, paths, tmp_path, text_file):
        for _ in range(3):
            assert run_process(paths, "--text-file", str(text_file)).exit_code == 0

        pricier = tmp_path / "pricier.txt"
        pricier.write_text(
            text_file.read_text(encoding="utf-8").replace("$5.00  $50.00", "$9.00  $50.00"),
            encoding="utf-8",
        )

        result = run_process(paths, "--text-file", str(pricier), "--fail-on-discrepancy", "--no-save")

        assert result.exit_code == 1
        assert "DISCREPANCIES FOUND" in result.output

    def test_threshold_options(self, paths, tmp_path, text_file):
        for _ in range(3):
            run_process(paths, "--text-file", str(text_file))

        pricier = tmp_path / "pricier.txt"
        pricier.write_text(
            text_file.read_text(encoding="utf-8").replace("$5.00  $50.00", "$5.50  $50.00"),
            encoding="utf-8",
        )

        result = run_process(
            paths, "--text-file", str(pricier), "--percentage-threshold", "0.05", "--mode", "PERCENTAGE"
        )

        assert result.exit_code == 0, result.output
        assert "DISCREPANCIES FOUND" in result.output

    def test_requires_one_source(self, paths, text_file):
        assert run_process(paths).exit_code == 2

    def test_rejects_both_sources(self, paths, text_file):
        result = run_process(paths, "--text-file", str(text_file), "--pdf", str(text_file))
        assert result.exit_code == 2


class TestProcessDir:
    """Tests for the process-dir command."""

    @patch("invoice_audit.pipeline.extract_text_from_pdf")
    def test_processes_pdfs_in_order(self, mock_extract, paths, tmp_path, sample_text):
        pdf_dir = tmp_path / "pdfs"
        pdf_dir.mkdir()
        for name in ("b.pdf", "a.PDF", "notes.txt"):
            (pdf_dir / name).write_bytes(b"%PDF-1.4")
        mock_extract.return_value = sample_text

        result = runner.invoke(app, [
            "process-dir",
            "--pdf-dir", str(pdf_dir),
            "--history", str(paths["history"]),
            "--reports-dir", str(paths["reports"]),
        ])

        assert result.exit_code == 0, result.output
        assert [call.args[0].name for call in mock_extract.call_args_list] == ["a.PDF", "b.pdf"]
        assert "[OK] Processed 2 of 2 file(s)" in result.output
        assert (paths["reports"] / "a_report.json").exists()
        assert (paths["reports"] / "b_report.json").exists()

    @patch("invoice_audit.pipeline.extract_text_from_pdf")
    def test_unreadable_pdf_reported(self, mock_extract, paths, tmp_path, sample_text):
        pdf_dir = tmp_path / "pdfs"
        pdf_dir.mkdir()
        for name in ("a.pdf", "b.pdf"):
            (pdf_dir / name).write_bytes(b"%PDF-1.4")
        mock_extract.side_effect = [ExtractionError("Could not extract text from a.pdf"), sample_text]

        result = runner.invoke(app, [
            "process-dir",
            "--pdf-dir", str(pdf_dir),
            "--history", str(paths["history"]),
            "--reports-dir", str(paths["reports"]),
        ])

        assert result.exit_code == 1
        assert "[OK] Processed 1 of 2 file(s)" in result.output

    def test_empty_directory(self, paths, tmp_path):
        result = runner.invoke(app, ["process-dir", "--pdf-dir", str(tmp_path), "--history", str(paths["history"])])
        assert result.exit_code == 1


class TestStatsCommands:
    """Tests for stats, recalculate and clear-history."""

    def test_stats_empty(self, paths):
        result = runner.invoke(app, ["stats", "--history", str(paths["history"])])

        assert result.exit_code == 0
        assert "Invoices in history: 0" in result.output

    def test_stats_after_processing(self, paths, text_file):
        run_process(paths, "--text-file", str(text_file))

        result = runner.invoke(app, ["stats", "--history", str(paths["history"])])

        assert result.exit_code == 0
        assert "Invoices in history: 1" in result.output
        assert "Tracked items:       2" in result.output
        assert "Acme Supplies Inc." in result.output

    def test_stats_json(self, paths, text_file):
        run_process(paths, "--text-file", str(text_file))

        result = runner.invoke(app, ["stats", "--history", str(paths["history"]), "--json"])

        data = json.loads(result.output)
        assert set(data["item_averages"]) == {"widget large", "gadget small"}

    def test_recalculate(self, paths, text_file):
        run_process(paths, "--text-file", str(text_file))

        result = runner.invoke(app, ["recalculate", "--history", str(paths["history"])])

        assert result.exit_code == 0
        assert "[OK] Statistics recalculated: 2 item(s), 1 vendor(s)" in result.output

    def test_clear_history(self, paths, text_file):
        run_process(paths, "--text-file", str(text_file))

        result = runner.invoke(app, ["clear-history", "--history", str(paths["history"]), "--yes"])

        assert result.exit_code == 0
        assert "[OK] History cleared" in result.output
        history = json.loads(paths["history"].read_text(encoding="utf-8"))
        assert history["invoices"] == []

    def test_clear_history_aborted(self, paths, text_file):
        run_process(paths, "--text-file", str(text_file))

        result = runner.invoke(app, ["clear-history", "--history", str(paths["history"])], input="n\n")

        assert result.exit_code == 1
        history = json.loads(paths["history"].read_text(encoding="utf-8"))
        assert len(history["invoices"]) == 1


class TestReportCommand:
    """Tests for the report command."""

    def test_text_report(self, paths, text_file):
        run_process(paths, "--text-file", str(text_file))

        result = runner.invoke(app, ["report", "acme.txt", "--reports-dir", str(paths["reports"])])

        assert result.exit_code == 0
        assert result.output.startswith("INVOICE DISCREPANCY REPORT")

    def test_html_report(self, paths, text_file):
        run_process(paths, "--text-file", str(text_file))

        result = runner.invoke(app, ["report", "acme.txt", "--html", "--reports-dir", str(paths["reports"])])

        assert result.exit_code == 0
        assert "<!DOCTYPE html>" in result.output

    def test_missing_report(self, paths):
        result = runner.invoke(app, ["report", "nothing", "--reports-dir", str(paths["reports"])])
        assert result.exit_code == 1


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "Invoice Audit Service v0.1.0" in result.output
