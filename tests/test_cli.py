from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "deposit_doctor.cli"]

DEPOSITS = "Status,Amount,Refund\nPaid,100,0\nPaid,200,10\nVoid,50,0\n"
SHOPIFY = (
    "Day,Order name,Payment gateway,Order sales channel,Gross payments,Refunded payments,Net payments\n"
    "3/7/2024,#1001,paypal,Online Store,100,0,100\n"
    "3/7/2024,#1001,paypal,Online Store,50,10,40\n"
    "3/8/2024,#1002,cash,Point of Sale,20,0,20\n"
)


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env.pop("DEPOSIT_DOCTOR_SETTINGS", None)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


class DepositDoctorCliTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)
        self.deposits = self.tmpdir / "deposits.csv"
        self.deposits.write_text(DEPOSITS, encoding="utf-8")
        self.settings = self.tmpdir / "settings.json"

    def tearDown(self):
        self._tmp.cleanup()

    def test_totals_with_filter_and_percent_tax(self):
        proc = run_cli(
            "totals",
            str(self.deposits),
            "--amount", "Amount",
            "--refund", "Refund",
            "--filter", "Status",
            "--include", "Paid",
            "--tax-method", "fixed_percent",
            "--tax-value", "10",
            "--json",
        )
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"], {"name": "deposit.totals", "version": "1.0.0"})
        self.assertEqual(payload["totals"], {
            "totalAmount": 300.0,
            "totalRefunds": 10.0,
            "netAmount": 290.0,
            "taxAmount": 29.0,
            "finalAmount": 319.0,
            "rowsAfterFilter": 2,
        })
        self.assertEqual(payload["rows_in_file"], 3)
        self.assertEqual(payload["run_summary"]["command"], "totals")

    def test_totals_text_output(self):
        proc = run_cli("totals", str(self.deposits), "--amount", "Amount")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Total amount: 350", proc.stdout)
        self.assertIn("Final amount: 350", proc.stdout)

    def test_saved_settings_are_used_by_payment_method(self):
        save = run_cli(
            "settings", "save", "card",
            "--settings", str(self.settings),
            "--amount", "Amount",
            "--filter", "Status",
            "--include", "Void",
            "--tax-method", "fixed_amount",
            "--tax-value", "5",
        )
        self.assertEqual(save.returncode, 0, save.stderr)
        self.assertIn("Settings saved:", save.stderr)

        show = run_cli("settings", "show", "card", "--settings", str(self.settings))
        self.assertEqual(show.returncode, 0, show.stderr)
        self.assertEqual(json.loads(show.stdout)["filter_include_values"], ["Void"])

        proc = run_cli(
            "totals", str(self.deposits), "--payment-method", "card", "--json",
            env={"DEPOSIT_DOCTOR_SETTINGS": str(self.settings)},
        )
        self.assertEqual(proc.returncode, 0, proc.stderr)
        totals = json.loads(proc.stdout)["totals"]
        self.assertEqual(totals["totalAmount"], 50.0)
        self.assertEqual(totals["finalAmount"], 55.0)
        self.assertEqual(totals["rowsAfterFilter"], 1)

    def test_unknown_payment_method_returns_exit_1(self):
        proc = run_cli("totals", str(self.deposits), "--payment-method", "nope", "--settings", str(self.settings))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("No saved settings", proc.stderr)

    def test_unknown_column_returns_exit_1(self):
        proc = run_cli("totals", str(self.deposits), "--amount", "Total")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Columns not found", proc.stderr)

    def test_columns_command_profiles_columns(self):
        proc = run_cli("columns", str(self.deposits), "--values", "Status", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual([column["name"] for column in payload["columns"]], ["Status", "Amount", "Refund"])
        self.assertEqual(payload["columns"][1]["numeric"], True)
        self.assertEqual(payload["distinct_values"], ["Paid", "Void"])
        self.assertEqual(payload["row_count"], 3)

    def test_shopify_grouped_json(self):
        export = self.tmpdir / "payments.csv"
        export.write_text(SHOPIFY, encoding="utf-8")
        proc = run_cli("shopify", str(export), "--group", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["row_count"], 3)
        self.assertEqual(len(payload["rows"]), 2)
        first = payload["rows"][0]
        self.assertEqual(first["day"], "2024-03-07")
        self.assertEqual(first["gross_payments"], 150.0)
        self.assertEqual(first["net_payments"], 140.0)

    def test_header_only_file_returns_exit_2(self):
        empty = self.tmpdir / "empty.csv"
        empty.write_text("Status,Amount\n", encoding="utf-8")
        proc = run_cli("columns", str(empty))
        self.assertEqual(proc.returncode, 2)
        self.assertIn("No data rows found", proc.stderr)

    def test_missing_file_returns_exit_1(self):
        proc = run_cli("columns", str(self.tmpdir / "missing.csv"))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_bad_arguments_return_exit_1(self):
        proc = run_cli("totals")
        self.assertEqual(proc.returncode, 1)

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), "0.1.0")


if __name__ == "__main__":
    unittest.main()
