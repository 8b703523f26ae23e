from decimal import Decimal

from storefront.config import Settings
from storefront.pricing import PriceLine, Totals, compute_totals, shipping_for

D = Decimal


def test_totals_for_plain_cart():
    totals = compute_totals([PriceLine(D("20.00"), 2)])

    assert totals == Totals(
        subtotal=D("40.00"),
        shipping=D("5.00"),
        tax=D("4.00"),
        discount=D("0.00"),
        total=D("49.00"),
    )
    assert totals.reconciles()


def test_discount_comes_off_the_total():
    totals = compute_totals([PriceLine(D("20.00"), 2)], discount=D("4.00"))

    assert totals.total == D("45.00")
    assert totals.reconciles()


def test_shipping_is_free_only_when_every_line_ships_free():
    free = PriceLine(D("10.00"), 1, free_shipping=True)
    paid = PriceLine(D("10.00"), 1)

    assert shipping_for([free], D("5.00")) == D("0")
    assert shipping_for([free, paid], D("5.00")) == D("5.00")
    assert shipping_for([], D("5.00")) == D("0")


def test_total_never_goes_below_zero():
    totals = compute_totals([PriceLine(D("1.00"), 1)], discount=D("50.00"))

    assert totals.total == D("0")
    assert totals.reconciles()


def test_tax_rounds_half_up_to_cents():
    settings = Settings().with_tax_rate("0.075").with_flat_shipping("0")
    totals = compute_totals([PriceLine(D("0.70"), 1)], settings=settings)

    # 0.0525 -> 0.05
    assert totals.tax == D("0.05")
    assert totals.total == D("0.75")


def test_negative_discount_is_ignored():
    totals = compute_totals([PriceLine(D("10.00"), 1)], discount=D("-3"))

    assert totals.discount == D("0.00")
    assert totals.total == D("16.00")
