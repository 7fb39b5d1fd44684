import unittest
from datetime import date
from decimal import Decimal

from ledger_engine.currency_conversion import (
    ConversionContext,
    CurrencyCode,
    CustomDate,
    FxBook,
    FxRate,
    FxTolerance,
    MissingRateError,
    ReportDate,
    TransactionDate,
    convert_amount,
    policy_date,
)


def usd_eur(on: date, rate: str, source: str | None = None) -> FxRate:
    return FxRate(
        from_currency=CurrencyCode("USD"),
        to_currency=CurrencyCode("EUR"),
        date=on,
        rate=Decimal(rate),
        source=source,
    )


class CurrencyCodeTests(unittest.TestCase):
    def test_codes_are_case_normalized(self) -> None:
        self.assertEqual(CurrencyCode(" usd "), CurrencyCode("USD"))
        self.assertEqual(str(CurrencyCode("eur")), "EUR")

    def test_rejects_malformed_codes(self) -> None:
        with self.assertRaises(ValueError):
            CurrencyCode("US")
        with self.assertRaises(ValueError):
            CurrencyCode("12A")


class FxBookTests(unittest.TestCase):
    def setUp(self) -> None:
        self.book = FxBook(tolerance=FxTolerance(days=5))
        self.book.add_rate(usd_eur(date(2024, 1, 1), "0.90"))

    def test_nearest_prior_within_tolerance(self) -> None:
        lookup = self.book.lookup_rate("USD", "EUR", date(2024, 1, 4))

        self.assertEqual(lookup.rate, Decimal("0.90"))
        self.assertEqual(lookup.date, date(2024, 1, 1))
        self.assertEqual(lookup.source, "nearest_prior")

    def test_inverse_direction_is_derived(self) -> None:
        lookup = self.book.lookup_rate("EUR", "USD", date(2024, 1, 1))

        self.assertLess(abs(lookup.rate - Decimal("1.1111")), Decimal("0.0001"))
        self.assertEqual(lookup.date, date(2024, 1, 1))
        self.assertEqual(lookup.source, "manual")

    def test_tolerance_boundary(self) -> None:
        self.assertEqual(
            self.book.lookup_rate("usd", "eur", date(2024, 1, 6)).source,
            "nearest_prior",
        )
        with self.assertRaises(MissingRateError):
            self.book.lookup_rate("USD", "EUR", date(2024, 1, 7))

    def test_zero_tolerance_requires_exact_date(self) -> None:
        book = FxBook()
        book.add_rate(usd_eur(date(2024, 1, 1), "0.90", source="ECB"))

        self.assertEqual(book.lookup_rate("USD", "EUR", date(2024, 1, 1)).source, "ECB")
        with self.assertRaises(MissingRateError):
            book.lookup_rate("USD", "EUR", date(2024, 1, 2))

    def test_no_rate_before_first_entry(self) -> None:
        with self.assertRaises(MissingRateError):
            self.book.lookup_rate("USD", "EUR", date(2023, 12, 31))

    def test_parity_for_same_currency(self) -> None:
        lookup = self.book.lookup_rate("GBP", "gbp", date(1999, 1, 1))

        self.assertEqual(lookup.rate, Decimal("1"))
        self.assertEqual(lookup.source, "parity")

    def test_unknown_pair_raises(self) -> None:
        with self.assertRaises(LookupError):
            self.book.lookup_rate("USD", "JPY", date(2024, 1, 1))

    def test_add_rate_overwrites_same_date(self) -> None:
        self.book.add_rate(usd_eur(date(2024, 1, 1), "0.95"))

        rates = self.book.all_rates()
        self.assertEqual(len(rates), 1)
        self.assertEqual(rates[0].rate, Decimal("0.95"))

    def test_all_rates_sorted_by_date(self) -> None:
        self.book.add_rate(usd_eur(date(2024, 3, 1), "0.92"))
        self.book.add_rate(usd_eur(date(2024, 2, 1), "0.91"))

        self.assertEqual(
            [rate.date for rate in self.book.all_rates()],
            [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)],
        )

    def test_remove_rate_clears_both_directions(self) -> None:
        self.book.add_rate(
            FxRate(
                from_currency=CurrencyCode("EUR"),
                to_currency=CurrencyCode("USD"),
                date=date(2024, 1, 1),
                rate=Decimal("1.12"),
            )
        )

        self.assertTrue(self.book.remove_rate("EUR", "USD", date(2024, 1, 1)))
        self.assertEqual(self.book.all_rates(), [])
        self.assertFalse(self.book.remove_rate("EUR", "USD", date(2024, 1, 1)))

    def test_zero_rate_inverts_to_zero(self) -> None:
        book = FxBook()
        book.add_rate(usd_eur(date(2024, 1, 1), "0"))

        self.assertEqual(book.lookup_rate("EUR", "USD", date(2024, 1, 1)).rate, Decimal("0"))


class ConversionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.book = FxBook()
        self.book.add_rate(
            FxRate(
                from_currency=CurrencyCode("EUR"),
                to_currency=CurrencyCode("USD"),
                date=date(2024, 1, 31),
                rate=Decimal("1.10"),
                source="ECB",
            )
        )

    def test_policy_date_selection(self) -> None:
        txn_date = date(2024, 1, 5)
        report = date(2024, 1, 31)

        self.assertEqual(policy_date(TransactionDate(), txn_date, report), txn_date)
        self.assertEqual(policy_date(ReportDate(), txn_date, report), report)
        self.assertEqual(
            policy_date(CustomDate(date(2023, 12, 31)), txn_date, report),
            date(2023, 12, 31),
        )

    def test_convert_under_report_date_policy(self) -> None:
        context = ConversionContext(
            policy=ReportDate(),
            report_date=date(2024, 1, 31),
            base_currency=CurrencyCode("USD"),
            fx_book=self.book,
        )

        converted = convert_amount(Decimal("100"), "eur", date(2024, 1, 5), context)

        self.assertEqual(converted.amount, Decimal("110"))
        self.assertEqual(converted.rate_date, date(2024, 1, 31))
        self.assertEqual(converted.from_currency, CurrencyCode("EUR"))
        self.assertEqual(converted.disclosure(), "EUR → USD @ 1.100000 on 2024-01-31 (ECB)")

    def test_convert_raises_when_rate_missing(self) -> None:
        context = ConversionContext(
            policy=TransactionDate(),
            report_date=date(2024, 1, 31),
            base_currency=CurrencyCode("USD"),
            fx_book=self.book,
        )

        with self.assertRaises(MissingRateError):
            convert_amount("100", "EUR", date(2024, 1, 5), context)


if __name__ == "__main__":
    unittest.main()
