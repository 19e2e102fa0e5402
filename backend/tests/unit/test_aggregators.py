import itertools
import random

import pytest

from enst.services.aggregators import (
    PowerAggregator,
    UsageAggregator,
    integrate_energy_j,
)

WINDOW_US = 300_000_000
BASE_S = 1_700_000_100           # aligned to a 300 s boundary
BASE_US = BASE_S * 1_000_000


# ============================================================
# ENERGY INTEGRATION
# ============================================================

@pytest.mark.parametrize("case", [
    {"id": "no_samples", "samples": [], "expect": 0.0},
    {"id": "single_sample_constant", "samples": [(BASE_US, 1000.0)], "expect": 300_000.0},
    {
        "id": "two_samples_trapezoid",
        "samples": [(BASE_US, 1000.0), (BASE_US + 10_000_000, 2000.0)],
        "expect": 15_000.0,
    },
    {
        "id": "out_of_order_sorted",
        "samples": [(BASE_US + 20_000_000, 1000.0), (BASE_US, 1000.0), (BASE_US + 10_000_000, 3000.0)],
        "expect": 40_000.0,
    },
], ids=lambda c: c["id"])
def test_integrate_energy_j(case):
    assert integrate_energy_j(case["samples"], 300.0) == pytest.approx(case["expect"])


# ============================================================
# USAGE
# ============================================================

def test_usage_window_means_and_counts():
    agg = UsageAggregator(WINDOW_US)
    agg.add_sample({"ts": BASE_S + 10, "site_id": "s1", "cpu_util": 0.2, "gpu_util": 0.4, "type": "SUBMIT"})
    agg.add_sample({"ts": BASE_S + 20, "site_id": "s1", "cpu_util": 0.6})
    agg.add_sample({"ts": BASE_S + 400, "site_id": "s1", "cpu_util": 0.9})

    windows = list(agg.emit())
    assert len(windows) == 2

    first = windows[0]
    assert first.ts_start == BASE_US
    assert first.ts_end == BASE_US + WINDOW_US
    assert first.cpu_util == pytest.approx(0.4)
    assert first.gpu_util == pytest.approx(0.4)
    assert first.mem_util is None
    assert first.job_queue_depth == 1
    assert first.sample_count == 2
    assert first.resource_seconds == pytest.approx(0.8)   # (0.2 + 0.6) * 1 s


def test_usage_clamps_to_unit_interval():
    agg = UsageAggregator(WINDOW_US)
    agg.add_sample({"ts": BASE_S, "site_id": "s1", "cpu_util": 1.7, "mem_util": -0.3})
    (w,) = list(agg.emit())
    assert w.cpu_util == 1.0
    assert w.mem_util == 0.0


def test_usage_no_cpu_samples_gives_zero():
    agg = UsageAggregator(WINDOW_US)
    agg.add_sample({"ts": BASE_S, "site_id": "s1", "mem_util": 0.5})
    (w,) = list(agg.emit())
    assert w.cpu_util == 0.0


def test_usage_skips_missing_timestamp():
    agg = UsageAggregator(WINDOW_US)
    assert agg.add_sample({"site_id": "s1", "cpu_util": 0.5}) is False
    assert agg.add_sample({"ts": BASE_S, "site_id": "s1", "cpu_util": 0.5}) is True
    assert agg.skipped == 1
    assert len(list(agg.emit())) == 1


def test_site_override_applies_to_every_sample():
    agg = UsageAggregator(WINDOW_US, site_id="cluster-a")
    agg.add_sample({"ts": BASE_S, "machine_id": "m1", "cpu_util": 0.1})
    agg.add_sample({"ts": BASE_S, "machine_id": "m2", "cpu_util": 0.3})
    (w,) = list(agg.emit())
    assert w.site_id == "cluster-a"
    assert w.cpu_util == pytest.approx(0.2)


def test_add_after_emit_requires_clear():
    agg = UsageAggregator(WINDOW_US)
    agg.add_sample({"ts": BASE_S, "site_id": "s1", "cpu_util": 0.5})
    list(agg.emit())
    with pytest.raises(RuntimeError):
        agg.add_sample({"ts": BASE_S, "site_id": "s1", "cpu_util": 0.5})

    agg.clear()
    assert agg.add_sample({"ts": BASE_S, "site_id": "s1", "cpu_util": 0.5}) is True


# ============================================================
# POWER
# ============================================================

def test_power_window_energy_and_mean():
    agg = PowerAggregator(WINDOW_US)
    agg.add_sample({"ts": BASE_S, "site_id": "s1", "power_w": 1000})
    agg.add_sample({"ts": BASE_S + 100, "site_id": "s1", "power_w": 3000})

    (w,) = list(agg.emit())
    assert w.power_w == pytest.approx(2000.0)
    assert w.energy_j == pytest.approx(200_000.0)
    assert w.sample_count == 2


def test_power_window_without_valid_samples():
    agg = PowerAggregator(WINDOW_US)
    agg.add_sample({"ts": BASE_S, "site_id": "s1", "power_w": "n/a"})
    (w,) = list(agg.emit())
    assert w.power_w is None
    assert w.energy_j == 0.0


# ============================================================
# ORDER INDEPENDENCE
# ============================================================

def _usage_samples():
    rng = random.Random(3)
    out = []
    for site in ("a", "b"):
        for i in range(12):
            out.append({
                "ts": BASE_S + i * 50,
                "site_id": site,
                "cpu_util": rng.random(),
                "gpu_util": rng.random(),
                "event_type": i % 3 or None,
            })
    return out


def _power_samples():
    rng = random.Random(5)
    return [
        {"ts": BASE_S + i * 37, "site_id": site, "power_w": 500 + rng.random() * 1500}
        for site in ("a", "b")
        for i in range(15)
    ]


def _emit(agg_cls, samples):
    agg = agg_cls(WINDOW_US)
    for s in samples:
        agg.add_sample(s)
    return [w.model_dump() for w in agg.emit()]


@pytest.mark.parametrize("agg_cls, factory", [
    (UsageAggregator, _usage_samples),
    (PowerAggregator, _power_samples),
])
def test_emit_is_permutation_invariant(agg_cls, factory):
    samples = factory()
    expected = _emit(agg_cls, samples)

    rng = random.Random(11)
    for _ in range(5):
        shuffled = samples[:]
        rng.shuffle(shuffled)
        assert _emit(agg_cls, shuffled) == expected

    assert _emit(agg_cls, list(reversed(samples))) == expected


def test_interleaved_sites_match_sequential():
    a = [s for s in _power_samples() if s["site_id"] == "a"]
    b = [s for s in _power_samples() if s["site_id"] == "b"]
    interleaved = [x for pair in itertools.zip_longest(a, b) for x in pair if x is not None]
    assert _emit(PowerAggregator, interleaved) == _emit(PowerAggregator, a + b)
