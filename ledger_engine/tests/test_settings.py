import logging
import os
import unittest
from datetime import date
from decimal import Decimal
from unittest import mock

from pydantic import ValidationError

from ledger_engine.currency_conversion import (
    CurrencyCode,
    CustomDate,
    FxBook,
    FxRate,
    ReportDate,
    TransactionDate,
)
from ledger_engine.ledger import LedgerSnapshot
from ledger_engine.logging_config import configure_logging
from ledger_engine.settings import LedgerSettings
from ledger_engine.time_interval import TimeInterval, TimeUnit


class LedgerSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = LedgerSettings(_env_file=None)

        self.assertEqual(settings.base_currency, "USD")
        self.assertEqual(settings.fx_tolerance_days, 0)
        self.assertEqual(settings.valuation(), TransactionDate())
        self.assertEqual(settings.log_level, "INFO")

    def test_reads_prefixed_environment(self) -> None:
        env = {
            "LEDGER_BASE_CURRENCY": "chf",
            "LEDGER_VALUATION_POLICY": "report_date",
            "LEDGER_FX_TOLERANCE_DAYS": "4",
            "LEDGER_LOG_LEVEL": "debug",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = LedgerSettings(_env_file=None)

        self.assertEqual(settings.base_currency, "CHF")
        self.assertEqual(settings.valuation(), ReportDate())
        self.assertEqual(settings.fx_tolerance_days, 4)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_custom_date_policy(self) -> None:
        settings = LedgerSettings(
            _env_file=None,
            valuation_policy="custom_date",
            valuation_date=date(2024, 6, 30),
        )

        self.assertEqual(settings.valuation(), CustomDate(date(2024, 6, 30)))

    def test_invalid_values_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            LedgerSettings(_env_file=None, valuation_policy="custom_date")
        with self.assertRaises(ValidationError):
            LedgerSettings(_env_file=None, fx_tolerance_days=-1)
        with self.assertRaises(ValidationError):
            LedgerSettings(_env_file=None, base_currency="dollars")

    def test_snapshot_from_settings_copies_fx_book(self) -> None:
        settings = LedgerSettings(
            _env_file=None,
            base_currency="eur",
            valuation_policy="report_date",
            fx_tolerance_days=2,
        )
        book = FxBook()
        book.add_rate(
            FxRate(
                from_currency=CurrencyCode("USD"),
                to_currency=CurrencyCode("EUR"),
                date=date(2024, 1, 1),
                rate=Decimal("0.9"),
            )
        )

        ledger = LedgerSnapshot.from_settings(settings, "Household", date(2024, 1, 1), fx_book=book)

        self.assertEqual(ledger.base_currency, CurrencyCode("EUR"))
        self.assertEqual(ledger.valuation_policy, ReportDate())
        self.assertEqual(ledger.fx_book.tolerance.days, 2)
        self.assertEqual(ledger.fx_book.all_rates(), book.all_rates())
        self.assertEqual(book.tolerance.days, 0)
        context = ledger.conversion_context(date(2024, 1, 31))
        self.assertEqual(context.effective_date(date(2024, 1, 5)), date(2024, 1, 31))
        self.assertEqual(ledger.budget_period, TimeInterval(every=1, unit=TimeUnit.MONTH))

    def test_snapshot_from_settings_accepts_budget_period(self) -> None:
        fortnight = TimeInterval(every=2, unit=TimeUnit.WEEK)

        ledger = LedgerSnapshot.from_settings(
            LedgerSettings(_env_file=None),
            "Household",
            date(2024, 1, 1),
            budget_period=fortnight,
        )

        self.assertEqual(ledger.budget_period, fortnight)


class ConfigureLoggingTests(unittest.TestCase):
    def tearDown(self) -> None:
        logger = logging.getLogger("ledger_engine")
        for handler in list(logger.handlers):
            if handler.get_name() == "ledger_engine.console":
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    def test_handler_is_added_once(self) -> None:
        configure_logging("debug")
        logger = configure_logging("warning")

        named = [h for h in logger.handlers if h.get_name() == "ledger_engine.console"]
        self.assertEqual(len(named), 1)
        self.assertEqual(logger.level, logging.WARNING)

    def test_module_loggers_propagate_to_package_logger(self) -> None:
        configure_logging(logging.DEBUG)

        with self.assertLogs("ledger_engine", level="WARNING") as captured:
            logging.getLogger("ledger_engine.budget_engine").warning("rate missing")

        self.assertIn("rate missing", captured.output[0])


if __name__ == "__main__":
    unittest.main()
