import unittest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from ledger_engine.currency_conversion import CurrencyCode, CustomDate
from ledger_engine.models import AfterOccurrences, RecurrenceMode, TransactionStatus
from ledger_engine.snapshot_parser import parse_ledger_snapshot
from ledger_engine.time_interval import TimeUnit


class SnapshotParserTests(unittest.TestCase):
    def setUp(self) -> None:
        self.account_id = uuid4()
        self.category_id = uuid4()
        self.template_id = uuid4()
        self.payload = {
            "name": "Household",
            "created_on": "2024-01-01",
            "base_currency": "eur",
            "valuation_policy": {"kind": "custom_date", "date": "2024-06-30"},
            "fx_tolerance_days": 3,
            "fx_rates": [
                {
                    "from_currency": "usd",
                    "to_currency": "eur",
                    "date": "2024-01-01",
                    "rate": "0.90",
                    "source": "ECB",
                }
            ],
            "accounts": [{"id": str(self.account_id), "name": "Checking", "currency": "EUR"}],
            "categories": [{"id": str(self.category_id), "name": "Rent"}],
            "transactions": [
                {
                    "id": str(self.template_id),
                    "from_account": str(self.account_id),
                    "to_account": str(self.account_id),
                    "category_id": str(self.category_id),
                    "scheduled_date": "2024-01-01",
                    "budgeted_amount": "950.00",
                    "recurrence": {
                        "start_date": "2024-01-01",
                        "interval": {"every": 1, "unit": "month"},
                        "mode": "after_last_performed",
                        "end": {"kind": "after_occurrences", "count": 12},
                        "exceptions": ["2024-03-01"],
                    },
                }
            ],
        }

    def test_parses_full_ledger(self) -> None:
        ledger = parse_ledger_snapshot(self.payload)

        self.assertEqual(ledger.base_currency, CurrencyCode("EUR"))
        self.assertEqual(ledger.valuation_policy, CustomDate(date(2024, 6, 30)))
        self.assertEqual(ledger.fx_book.tolerance.days, 3)
        self.assertEqual(ledger.fx_book.lookup_rate("USD", "EUR", date(2024, 1, 3)).source, "nearest_prior")
        self.assertEqual(ledger.account(self.account_id).name, "Checking")
        self.assertEqual(ledger.budget_period.unit, TimeUnit.MONTH)

        template = ledger.transaction(self.template_id)
        self.assertEqual(template.budgeted_amount, Decimal("950.00"))
        self.assertEqual(template.status, TransactionStatus.PLANNED)
        self.assertEqual(template.series_id, self.template_id)
        self.assertEqual(template.recurrence.mode, RecurrenceMode.AFTER_LAST_PERFORMED)
        self.assertEqual(template.recurrence.end, AfterOccurrences(12))
        self.assertEqual(template.recurrence.exceptions, (date(2024, 3, 1),))

    def test_minimal_payload_uses_defaults(self) -> None:
        ledger = parse_ledger_snapshot({"name": "Empty", "created_on": "2024-01-01"})

        self.assertEqual(ledger.base_currency, CurrencyCode("USD"))
        self.assertEqual(ledger.transactions, ())
        self.assertEqual(ledger.fx_book.all_rates(), [])

    def test_custom_valuation_requires_date(self) -> None:
        self.payload["valuation_policy"] = {"kind": "custom_date"}

        with self.assertRaises(ValidationError):
            parse_ledger_snapshot(self.payload)

    def test_recurrence_end_requires_payload(self) -> None:
        self.payload["transactions"][0]["recurrence"]["end"] = {"kind": "on_date"}

        with self.assertRaises(ValidationError):
            parse_ledger_snapshot(self.payload)

    def test_rejects_invalid_interval(self) -> None:
        self.payload["transactions"][0]["recurrence"]["interval"] = {"every": 0, "unit": "day"}

        with self.assertRaises(ValidationError):
            parse_ledger_snapshot(self.payload)

    def test_invalid_base_currency_is_rejected(self) -> None:
        self.payload["base_currency"] = "EURO"

        with self.assertRaises(ValidationError):
            parse_ledger_snapshot(self.payload)

    def test_invalid_transaction_currency_is_rejected(self) -> None:
        self.payload["transactions"][0]["currency"] = "EURO"

        with self.assertRaises(ValidationError) as ctx:
            parse_ledger_snapshot(self.payload)

        [error] = ctx.exception.errors()
        self.assertEqual(error["loc"], ("transactions", 0, "currency"))

    def test_invalid_account_and_rate_currencies_are_rejected(self) -> None:
        self.payload["accounts"][0]["currency"] = "E1R"
        with self.assertRaises(ValidationError):
            parse_ledger_snapshot(self.payload)

        self.payload["accounts"][0]["currency"] = "EUR"
        self.payload["fx_rates"][0]["to_currency"] = "euro"
        with self.assertRaises(ValidationError):
            parse_ledger_snapshot(self.payload)

    def test_currency_codes_are_normalized(self) -> None:
        self.payload["transactions"][0]["currency"] = " chf "

        ledger = parse_ledger_snapshot(self.payload)

        self.assertEqual(ledger.transaction(self.template_id).currency, CurrencyCode("CHF"))


if __name__ == "__main__":
    unittest.main()
