import pytest

from statement_ledger.categories import CATEGORIES, OTHER, validate_category
from statement_ledger.rules import DEFAULT_RULES, KeywordRule, categorize


@pytest.mark.parametrize(
    ("description", "expected"),
    [
        ("GIRO - SALARY ACME PTE LTD", "Income"),
        ("NTUC FAIRPRICE TAMPINES", "Groceries"),
        ("GRAB* RIDE 12345 SINGAPORE", "Transport"),
        ("GRABFOOD ORDER 8841", "Food & Dining"),
        ("NETFLIX.COM SINGAPORE", "Subscriptions"),
        ("PAYMT THRU E-BANK/HOMEB/CYBERB", "Credit Card Payment"),
        ("PAYNOW TRANSFER TO JOHN", "P2P Transfers"),
        ("FUNDS TRANSFER PIB2412", "Transfers"),
    ],
)
def test_categorize_common_descriptions(description: str, expected: str):
    assert categorize(description) == expected


def test_specific_rules_win_over_broader_ones():
    # Both Investments and Transfers keywords are present; order decides.
    assert categorize("TRANSFER TO INVESTMENT ACCOUNT") == "Investments"
    assert categorize("SAVE TO GOAL TRANSFER") == "Savings"


def test_keywords_match_at_word_start_only():
    assert categorize("MONTHLY RENTAL") == "Rent"
    assert categorize("CURRENT ACCOUNT FEE") == OTHER


def test_short_keywords_require_whole_word():
    assert categorize("IRAS TAX") == "Tax"
    assert categorize("TAXATION CONSULT") == OTHER
    assert categorize("M1 LIMITED") == "Bills"
    assert categorize("M1234 WHOLESALE") == OTHER


def test_vendor_keywords_are_checked_against_the_vendor():
    assert categorize("NETS DEBIT 0042") == OTHER
    assert categorize("NETS DEBIT 0042", "Tiong Bahru Bakery") == "Food & Dining"


def test_unmatched_and_empty_text_fall_back_to_other():
    assert categorize("ZXQ HOLDINGS") == OTHER
    assert categorize("") == OTHER


def test_custom_rules_replace_defaults():
    rules = (KeywordRule("Healthcare", ("vet",)),)
    assert categorize("VET CLINIC", rules=rules) == "Healthcare"
    assert categorize("NETFLIX", rules=rules) == OTHER


def test_rule_categories_are_in_taxonomy():
    assert all(r.category in CATEGORIES for r in DEFAULT_RULES)
    with pytest.raises(ValueError):
        KeywordRule("Pets", ("vet",))


def test_validate_category_is_case_insensitive_and_canonical():
    assert validate_category("  groceries ") == "Groceries"
    assert validate_category("food &  dining") == "Food & Dining"
    with pytest.raises(ValueError, match="Unknown category"):
        validate_category("Pets")
