import random

import pytest

from circulation.errors import (
    InsufficientStockError,
    OutOfStockError,
    OverReturnError,
    ValidationError,
)
from circulation.inventory import (
    expected_available,
    on_book_created,
    on_book_quantity_edited,
    on_issue,
    on_return,
)


def test_new_book_starts_fully_available():
    assert on_book_created(4) == 4


def test_new_book_needs_at_least_one_copy():
    with pytest.raises(ValidationError):
        on_book_created(0)


def test_quantity_edit_keeps_borrowed_copies():
    # 5 kopya, 2 mevcut -> 3 ödünçte; 6'ya çıkınca 3 mevcut
    assert on_book_quantity_edited(5, 2, 6) == 3
    assert on_book_quantity_edited(5, 2, 3) == 0


def test_quantity_edit_below_borrowed_fails():
    with pytest.raises(InsufficientStockError):
        on_book_quantity_edited(old_quantity=5, old_available=2, new_quantity=2)


def test_issue_decrements_and_guards_empty_stock():
    assert on_issue(3) == 2
    with pytest.raises(OutOfStockError):
        on_issue(0)
    with pytest.raises(OutOfStockError):
        on_issue(-1)


def test_return_increments_and_guards_over_return():
    assert on_return(2, 3) == 3
    with pytest.raises(OverReturnError):
        on_return(3, 3)


def test_issue_then_return_restores_available():
    assert on_return(on_issue(2), 3) == 2


def test_expected_available():
    assert expected_available(4, 1) == 3


def test_random_sequences_stay_within_bounds():
    rng = random.Random(1234)
    for _ in range(200):
        quantity = on_book_created(rng.randint(1, 5))
        available = quantity
        for _ in range(30):
            action = rng.choice(["issue", "return", "edit"])
            try:
                if action == "issue":
                    available = on_issue(available)
                elif action == "return":
                    available = on_return(available, quantity)
                else:
                    new_quantity = rng.randint(1, 8)
                    available = on_book_quantity_edited(quantity, available, new_quantity)
                    quantity = new_quantity
            except (OutOfStockError, OverReturnError, InsufficientStockError):
                pass
            assert 0 <= available <= quantity
