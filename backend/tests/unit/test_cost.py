import math

import pytest

from enst.models.domain import TsvRecord
from enst.services.cost import (
    UNBOUNDED,
    build_notes,
    cost_for_work,
    cost_usd,
    delta_cost_per_reference_work,
    energy_for_work,
    resolve_price,
    weighted_average_price,
)

T0 = 1_700_000_100_000_000


def _rec(**kw):
    return TsvRecord(ts_start=T0, ts_end=T0 + 300_000_000, **kw)


@pytest.mark.parametrize("energy, price, expected", [
    (3.6e9, 50.0, 50.0),
    (7.2e9, 40.0, 80.0),
    (0.0, 50.0, 0.0),
    (None, 50.0, 0.0),
    (-1e9, 50.0, 0.0),
])
def test_cost_usd(energy, price, expected):
    assert cost_usd(energy, price) == pytest.approx(expected)


@pytest.mark.parametrize("enst", [None, 0.0, -1.0])
def test_energy_for_work_unbounded(enst):
    assert energy_for_work(1e9, enst) == UNBOUNDED
    assert math.isinf(cost_for_work(1e9, enst, 50.0))


def test_cost_for_work_composes():
    # 1e9 units at 1 unit/J -> 1e9 J
    assert energy_for_work(1e9, 1.0) == pytest.approx(1e9)
    assert cost_for_work(1e9, 1.0, 36.0) == pytest.approx(10.0)


def test_delta_negative_when_policy_more_efficient():
    delta = delta_cost_per_reference_work(0.5, 1.0, 50.0)
    assert delta is not None
    assert delta < 0
    assert delta == pytest.approx(cost_for_work(1e9, 1.0, 50.0) - cost_for_work(1e9, 0.5, 50.0))


def test_delta_positive_when_policy_less_efficient():
    assert delta_cost_per_reference_work(1.0, 0.5, 50.0) > 0


@pytest.mark.parametrize("baseline, policy", [
    (0.0, 1.0),
    (1.0, 0.0),
    (None, 1.0),
    (1.0, -2.0),
])
def test_delta_null_when_either_side_unbounded(baseline, policy):
    assert delta_cost_per_reference_work(baseline, policy, 50.0) is None


def test_delta_uses_policy_price_when_given():
    delta = delta_cost_per_reference_work(1.0, 1.0, 50.0, policy_price_usd_per_mwh=60.0)
    assert delta == pytest.approx(cost_for_work(1e9, 1.0, 60.0) - cost_for_work(1e9, 1.0, 50.0))


def test_resolve_price_flags_default():
    assert resolve_price(_rec(price_usd_per_mwh=30.0), 50.0) == (30.0, False)
    assert resolve_price(_rec(), 50.0) == (50.0, True)


def test_weighted_average_price():
    records = [
        _rec(energy_j=1000.0, price_usd_per_mwh=40.0),
        _rec(energy_j=3000.0, price_usd_per_mwh=80.0),
        _rec(energy_j=None),
    ]
    result = weighted_average_price(records, 50.0)
    assert result.avg_price == pytest.approx(70.0)
    assert result.defaulted_count == 1


def test_weighted_average_price_zero_energy_uses_default():
    assert weighted_average_price([_rec(price_usd_per_mwh=99.0)], 50.0).avg_price == 50.0
    assert weighted_average_price([], 42.0).avg_price == 42.0


@pytest.mark.parametrize("defaulted, source, expected", [
    (False, None, ""),
    (True, None, "missing_price_defaulted"),
    (False, "synthetic", "data_source=synthetic"),
    (True, "synthetic", "missing_price_defaulted;data_source=synthetic"),
])
def test_build_notes(defaulted, source, expected):
    assert build_notes(price_defaulted=defaulted, data_source=source) == expected
