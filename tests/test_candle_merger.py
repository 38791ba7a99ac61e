from dataflow.candle_aggregation import CandleMerger
from schemas.reconciliation import DiagnosticKind
from tests.helpers import make_candle


def _batch():
    return [
        {"timestamp": "2024-01-01T00:02:00Z", "open": 10, "high": 11, "low": 9, "close": 10.5, "volume": 3},
        {"timestamp": "2024-01-01T00:00:00Z", "open": 9, "high": 10, "low": 8, "close": 9.5, "volume": 1},
        {"timestamp": "2024-01-01T00:01:00Z", "open": 9.5, "high": 10, "low": 9, "close": 10, "volume": 2},
    ]


def test_batch_is_sorted_by_bucket_start():
    merger = CandleMerger(bucket_width_ms=60_000)

    series = merger.ingest(_batch())

    starts = [c.bucket_start for c in series]
    assert starts == sorted(starts)
    assert starts[1] - starts[0] == 60_000
    assert [c.close for c in series] == [9.5, 10, 10.5]


def test_ingest_is_idempotent():
    merger = CandleMerger(bucket_width_ms=60_000)

    once = merger.ingest(_batch())
    twice = merger.ingest(_batch())

    assert twice == once
    assert len(twice) == 3


def test_revision_replaces_only_matching_bucket():
    merger = CandleMerger(bucket_width_ms=60_000)
    before = merger.ingest(_batch())

    revised = _batch()
    revised[2] = dict(revised[2], close=10.25)
    after = merger.ingest(revised)

    assert len(after) == 3
    assert after[0] == before[0]
    assert after[2] == before[2]
    assert after[1].close == 10.25
    assert after[1].open == before[1].open


def test_retains_only_newest_entries():
    merger = CandleMerger(max_length=100)

    merger.ingest([make_candle(i * 60_000, 1.0) for i in range(60)])
    series = merger.ingest([make_candle(i * 60_000, 2.0) for i in range(60, 130)])

    assert len(series) == 100
    assert series[0].bucket_start == 30 * 60_000
    assert series[-1].bucket_start == 129 * 60_000


def test_out_of_order_old_bucket_outside_window_is_evicted_again():
    merger = CandleMerger(max_length=2)
    merger.ingest([make_candle(60_000, 1.0), make_candle(120_000, 1.0)])

    series = merger.ingest([make_candle(0, 5.0)])

    assert [c.bucket_start for c in series] == [60_000, 120_000]


def test_malformed_record_aborts_only_that_record():
    diagnostics = []
    merger = CandleMerger(on_diagnostic=diagnostics.append)

    series = merger.ingest([
        {"timestamp": 0, "open": 1, "high": 1, "low": 1, "close": 1},
        {"timestamp": 60_000, "open": 1, "high": "inf", "low": 1, "close": 1},
        {"timestamp": 120_000, "open": 1, "high": 1, "low": 1},
        {"timestamp": 180_000, "open": 2, "high": 2, "low": 2, "close": 2, "volume": 4},
    ])

    assert [c.bucket_start for c in series] == [0, 180_000]
    assert merger.candles_dropped == 2
    assert {d.kind for d in diagnostics} == {DiagnosticKind.MALFORMED_INPUT}
    assert "high" in diagnostics[0].message


def test_empty_batch_leaves_series_unchanged():
    diagnostics = []
    merger = CandleMerger(on_diagnostic=diagnostics.append)
    before = merger.ingest([make_candle(0, 1.0)])

    after = merger.ingest([])

    assert after == before
    assert diagnostics[-1].kind is DiagnosticKind.EMPTY_BATCH


def test_batch_that_is_not_a_list_is_dropped():
    diagnostics = []
    merger = CandleMerger(on_diagnostic=diagnostics.append)

    assert merger.ingest("not a batch") == ()
    assert merger.ingest(None) == ()
    assert [d.kind for d in diagnostics] == [DiagnosticKind.MALFORMED_INPUT] * 2


def test_unaligned_timestamps_are_truncated_to_bucket():
    merger = CandleMerger(bucket_width_ms=60_000)

    series = merger.ingest([
        {"timestamp": 60_500, "open": 1, "high": 1, "low": 1, "close": 1},
        make_candle(120_001, 2.0),
    ])

    assert [c.bucket_start for c in series] == [60_000, 120_000]


def test_oversized_numbers_abort_only_that_record():
    diagnostics = []
    merger = CandleMerger(on_diagnostic=diagnostics.append)

    series = merger.ingest([
        {"timestamp": 0, "open": 1, "high": 1, "low": 1, "close": 10 ** 400},
        {"timestamp": 10 ** 17, "open": 1, "high": 1, "low": 1, "close": 1},
        {"timestamp": 60_000, "open": 2, "high": 2, "low": 2, "close": 2},
    ])

    assert [c.bucket_start for c in series] == [60_000]
    assert merger.candles_dropped == 2
    assert series[0].to_dict()["time"].startswith("1970-01-01T00:01:00")
