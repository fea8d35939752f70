from dataclasses import replace

from bookkeeping.domain import Branch
from bookkeeping.filters import LedgerFilter, account_matches, by_search, normalize_text


def test_normalize_text_strips_diacritics():
    assert normalize_text("Hà Nội") == "ha noi"
    assert normalize_text("Đơn vị") == "don vi"
    assert normalize_text("") == ""


def test_search_ignores_accents(tx):
    t = replace(tx(), description="Chi lương tháng 12")
    assert by_search("luong")(t)
    assert not by_search("ads")(t)


def test_account_matches(accounts):
    assert account_matches(accounts[0], "thu tien")
    assert account_matches(accounts[1], "ADS")
    assert account_matches(accounts[1], "")


def test_empty_filter_keeps_everything(tx):
    assert LedgerFilter()(tx())


def test_filter_combines_predicates(tx):
    flt = LedgerFilter(branch="HCM", account_code="1.1US")
    assert flt(tx(branch=Branch.HCM))
    assert not flt(tx(branch=Branch.HN))
    assert not flt(tx(branch=Branch.HCM, code="6"))
