import io
import unittest
from datetime import datetime

from openpyxl import Workbook

from deposit_doctor.errors import InsufficientRowsError, ParseError
from deposit_doctor.shopify import (
    ShopifyImportRow,
    convert_shopify_date,
    format_date_for_db,
    get_unique_order_sales_channels,
    get_unique_payment_gateways,
    group_shopify_sales,
    parse_shopify_file,
)

HEADER = (
    "Transaction ID,Day,Order name,Payment gateway,POS location name,"
    "Order sales channel,POS register ID,Gross payments,Refunded payments,Net payments"
)

EXPORT = "\n".join([
    HEADER,
    't1,3/7/2024,#1001,shopify_payments,,Online Store,,"$1,200.50",0,"1,200.50"',
    "t2,3/7/2024,#1001,shopify_payments,,Online Store,,100,10,90",
    "t3,3/7/2024,,manual,Main St,Point of Sale,R1,5,0,5",
    ",,,,,,,,,",
    "",
]).encode("utf-8")


class ShopifyParseTests(unittest.TestCase):
    def test_export_rows_are_mapped_and_incomplete_rows_dropped(self):
        result = parse_shopify_file(EXPORT, "payments.csv")

        self.assertEqual(result.columns, HEADER.split(","))
        self.assertEqual(len(result.raw_rows), 3)
        self.assertEqual(result.row_count, 2)
        self.assertEqual(len(result.rows), 2)

        first = result.rows[0]
        self.assertEqual(first.day, "2024-03-07")
        self.assertEqual(first.order_name, "#1001")
        self.assertEqual(first.payment_gateway, "shopify_payments")
        self.assertEqual(first.gross_payments, 1200.5)
        self.assertEqual(first.net_payments, 1200.5)
        self.assertEqual(first.transaction_id, "t1")
        self.assertIsNone(first.pos_location_name)
        self.assertEqual(first.order_sales_channel, "Online Store")

    def test_raw_rows_keep_every_header(self):
        result = parse_shopify_file(EXPORT, "payments.csv")
        incomplete = result.raw_rows[2]
        self.assertEqual(incomplete["Order name"], "")
        self.assertEqual(incomplete["POS location name"], "Main St")
        self.assertEqual(set(incomplete), set(HEADER.split(",")))

    def test_header_row_offset(self):
        data = b"Payments export\n" + EXPORT
        result = parse_shopify_file(data, "payments.csv", header_row_index=1)
        self.assertEqual(result.row_count, 2)

    def test_negative_header_row_is_rejected(self):
        with self.assertRaises(ValueError):
            parse_shopify_file(EXPORT, "payments.csv", header_row_index=-1)

    def test_header_row_past_the_end(self):
        with self.assertRaises(InsufficientRowsError) as ctx:
            parse_shopify_file(EXPORT, "payments.csv", header_row_index=10)
        self.assertIsInstance(ctx.exception, ParseError)
        self.assertEqual(ctx.exception.header_row_index, 10)

    def test_unknown_headers_are_ignored(self):
        data = b"Order name,Payment gateway,Note\n#1,cash,hello\n"
        result = parse_shopify_file(data, "payments.csv")
        self.assertEqual(result.row_count, 1)
        row = result.rows[0]
        self.assertEqual(row.day, "")
        self.assertEqual(row.gross_payments, 0.0)
        self.assertEqual(result.raw_rows[0]["Note"], "hello")

    def test_xlsx_export(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["Day", "Order name", "Payment gateway", "Gross payments", "Refunded payments", "Net payments"])
        ws.append([datetime(2024, 3, 7), "#2001", "paypal", 12.5, 0, 12.5])
        buffer = io.BytesIO()
        wb.save(buffer)

        result = parse_shopify_file(buffer.getvalue(), "payments.xlsx")
        self.assertEqual(result.rows[0].day, "2024-03-07")
        self.assertEqual(result.rows[0].gross_payments, 12.5)
        self.assertEqual(result.rows[0].refunded_payments, 0.0)


class ShopifyGroupingTests(unittest.TestCase):
    def test_rows_with_same_key_are_summed(self):
        result = parse_shopify_file(EXPORT, "payments.csv")
        grouped = group_shopify_sales(result.rows)

        self.assertEqual(list(grouped), ["2024-03-07|#1001|shopify_payments"])
        merged = grouped["2024-03-07|#1001|shopify_payments"]
        self.assertEqual(merged.gross_payments, 1300.5)
        self.assertEqual(merged.refunded_payments, 10.0)
        self.assertEqual(merged.net_payments, 1290.5)

    def test_grouping_does_not_modify_input_rows(self):
        rows = [
            ShopifyImportRow(day="2024-03-07", order_name="#1", payment_gateway="cash", gross_payments=5.0),
            ShopifyImportRow(day="2024-03-07", order_name="#1", payment_gateway="cash", gross_payments=7.0),
            ShopifyImportRow(day="2024-03-08", order_name="#1", payment_gateway="cash", gross_payments=1.0),
        ]
        grouped = group_shopify_sales(rows)
        self.assertEqual(len(grouped), 2)
        self.assertEqual(grouped["2024-03-07|#1|cash"].gross_payments, 12.0)
        self.assertEqual(rows[0].gross_payments, 5.0)

    def test_unreadable_days_stay_distinct_when_grouping(self):
        data = (
            b"Day,Order name,Payment gateway,Gross payments\n"
            b"sometime,#1,cash,5\n"
            b"later,#1,cash,7\n"
            b"3/7/2024,#1,cash,1\n"
        )
        result = parse_shopify_file(data, "payments.csv")
        self.assertEqual([row.day for row in result.rows], ["sometime", "later", "2024-03-07"])

        grouped = group_shopify_sales(result.rows)
        self.assertEqual(sorted(grouped), ["2024-03-07|#1|cash", "later|#1|cash", "sometime|#1|cash"])
        self.assertEqual(grouped["sometime|#1|cash"].gross_payments, 5.0)
        self.assertEqual(grouped["sometime|#1|cash"].to_record()["day"], "")

    def test_unique_gateways_and_channels(self):
        rows = [
            ShopifyImportRow(day="d", order_name="#1", payment_gateway=" paypal", order_sales_channel="Online Store"),
            ShopifyImportRow(day="d", order_name="#2", payment_gateway="cash", order_sales_channel="Point of Sale"),
            ShopifyImportRow(day="d", order_name="#3", payment_gateway="paypal"),
        ]
        self.assertEqual(get_unique_payment_gateways(rows), ["cash", "paypal"])
        self.assertEqual(get_unique_order_sales_channels(rows), ["Online Store", "Point of Sale"])

    def test_record_omits_missing_optional_fields(self):
        row = ShopifyImportRow(day="3/7/2024", order_name="#1", payment_gateway="cash", transaction_id="t9")
        record = row.to_record()
        self.assertEqual(record["day"], "2024-03-07")
        self.assertEqual(record["transaction_id"], "t9")
        self.assertNotIn("pos_register_id", record)


class ShopifyDateTests(unittest.TestCase):
    def test_convert_for_display(self):
        self.assertEqual(convert_shopify_date("3/7/2024"), "07/03/2024")
        self.assertEqual(convert_shopify_date("2024-03-07"), "2024-03-07")
        self.assertEqual(convert_shopify_date(""), "")

    def test_format_for_storage(self):
        self.assertEqual(format_date_for_db("2024-03-07"), "2024-03-07")
        self.assertEqual(format_date_for_db("3/7/2024"), "2024-03-07")
        self.assertEqual(format_date_for_db("12/31/2023"), "2023-12-31")
        self.assertEqual(format_date_for_db("March 7, 2024"), "2024-03-07")

    def test_unreadable_dates_become_empty(self):
        self.assertEqual(format_date_for_db("13/40/2024"), "")
        self.assertEqual(format_date_for_db("not a date"), "")
        self.assertEqual(format_date_for_db(None), "")
        self.assertEqual(format_date_for_db("  "), "")


if __name__ == "__main__":
    unittest.main()
