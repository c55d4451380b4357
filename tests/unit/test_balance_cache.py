"""Тесты InMemoryBalanceCache"""
import pytest
from solders.pubkey import Pubkey

from trading.balance_cache import InMemoryBalanceCache


@pytest.fixture
def cache():
    return InMemoryBalanceCache(sol_lamports=1_000_000_000)


def test_record_fill_accumulates(cache, mint):
    cache.record_fill(mint, 1_000, price=0.5)
    cache.record_fill(mint, 500)

    holding = cache.get_holding(mint)
    assert holding.amount == 1_500
    assert holding.price == 0.5


def test_record_fill_to_zero_removes_entry(cache, mint):
    cache.record_fill(mint, 1_000)
    cache.record_fill(mint, -1_000)
    assert cache.get_holding(mint) is None


def test_fraction_rounds_down(cache, mint):
    cache.record_fill(mint, 1_001)
    assert cache.get_holding_fraction(mint, 50) == 500


def test_fraction_never_below_one(cache, mint):
    cache.record_fill(mint, 10)
    assert cache.get_holding_fraction(mint, 1) == 1


def test_fraction_capped_at_holding(cache, mint):
    cache.record_fill(mint, 10)
    assert cache.get_holding_fraction(mint, 100) == 10
    assert cache.get_holding_fraction(mint, 150) == 10


def test_fraction_of_nothing(cache):
    assert cache.get_holding_fraction(Pubkey.new_unique(), 50) == 0


def test_fraction_of_zero_percent(cache, mint):
    cache.record_fill(mint, 10)
    assert cache.get_holding_fraction(mint, 0) == 0


def test_reduce_holding(cache, mint):
    cache.record_fill(mint, 1_000)
    cache.reduce_holding(mint, 400)
    assert cache.get_holding(mint).amount == 600

    cache.reduce_holding(mint, 10_000)
    assert cache.get_holding(mint) is None


def test_reduce_unknown_mint_is_noop(cache):
    cache.reduce_holding(Pubkey.new_unique(), 10)
    assert cache.holdings == {}


def test_sol_balance(cache):
    cache.credit_balance(500)
    cache.credit_balance(-10)
    assert cache.get_balance() == 1_000_000_500

    cache.set_balance(100)
    assert cache.get_balance() == 100
