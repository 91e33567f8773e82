"""Tests de la máquina de estados del filtro de tasa.

Ejecutar:
    pytest tests/test_rate_filter.py -v
"""

import threading

import pytest

from rate_filter import (
    ConfigurationError,
    ExpressionError,
    ExpressionStatus,
    FilterState,
    RateFilter,
    RateFilterConfig,
    RateUnit,
)
from rate_filter.core.domain import Reading


def _values(readings, name="v"):
    return [r.values().get(name) for r in readings]


def _make_filter(**kwargs) -> RateFilter:
    kwargs.setdefault("pre_trigger_ms", 0)
    return RateFilter("rate", RateFilterConfig(**kwargs), max_variables=20)


# =============================================================================
# EXCLUSIONES
# =============================================================================

class TestExclusions:
    """Assets excluidos pasan sin modificar en cualquier estado."""

    def test_excluded_untriggered(self, make_reading):
        rf = _make_filter(trigger="v > 10", rate=1, exclusions=("pump",))
        batch = [make_reading(i * 100, asset="pump", v=100 + i) for i in range(5)]
        expected = list(batch)

        out = []
        rf.ingest(batch, out)

        assert len(out) == len(expected)
        assert all(a is b for a, b in zip(out, expected))
        assert batch == []
        assert rf.state == FilterState.UNTRIGGERED

    def test_excluded_triggered(self, make_reading):
        rf = _make_filter(trigger="v > 10", untrigger="v < 0", exclusions=("pump",))
        rf.ingest([make_reading(0, v=50)], [])
        assert rf.state == FilterState.TRIGGERED

        batch = [make_reading(100 + i, asset="pump", v=i) for i in range(3)]
        expected = list(batch)
        out = []
        rf.ingest(batch, out)

        assert all(a is b for a, b in zip(out, expected))
        assert len(out) == 3


# =============================================================================
# TRANSICIONES
# =============================================================================

class TestTransitions:
    """Trigger/untrigger y continuación del batch tras la transición."""

    def test_rate_zero_drops_untriggered(self, make_reading):
        rf = _make_filter(trigger="v > 10", rate=0)
        batch = [make_reading(i * 100, v=i) for i in range(5)]

        out = []
        rf.ingest(batch, out)

        assert out == []
        assert batch == []
        assert rf.get_stats()["dropped"] == 5

    def test_alternating_states(self, make_reading):
        rf = _make_filter(trigger="v > 10", untrigger="v < 5")
        values = [1, 2, 20, 15, 3, 7, 30, 8]
        batch = [make_reading(i * 100, v=v) for i, v in enumerate(values)]
        originals = list(batch)

        out = []
        rf.ingest(batch, out)

        assert _values(out) == [20, 15, 3, 30, 8]
        assert out[0] is originals[2]
        assert rf.state == FilterState.TRIGGERED
        stats = rf.get_stats()
        assert stats["triggers"] == 2
        assert stats["untriggers"] == 1

    def test_state_persists_across_batches(self, make_reading):
        rf = _make_filter(trigger="v > 10", untrigger="v < 5")

        out = []
        rf.ingest([make_reading(0, v=1), make_reading(100, v=20)], out)
        rf.ingest([make_reading(200, v=8), make_reading(300, v=9)], out)
        assert rf.state == FilterState.TRIGGERED

        rf.ingest([make_reading(400, v=4), make_reading(500, v=9)], out)

        assert _values(out) == [20, 8, 9, 4]
        assert rf.state == FilterState.UNTRIGGERED

    def test_default_untrigger_negates_trigger(self, make_reading):
        rf = _make_filter(trigger="v > 10")
        batch = [make_reading(i * 100, v=v) for i, v in enumerate([20, 12, 4, 6, 50])]

        out = []
        rf.ingest(batch, out)

        assert _values(out) == [20, 12, 4, 50]
        assert rf.state == FilterState.TRIGGERED

    def test_process_returns_output_and_keeps_input(self, make_reading):
        rf = _make_filter(trigger="v > 10")
        batch = [make_reading(0, v=1), make_reading(100, v=20)]

        out = rf.process(batch)

        assert _values(out) == [20]
        assert out[0] is batch[1]
        assert len(batch) == 2
        assert rf.state == FilterState.TRIGGERED

    def test_rapid_oscillation_does_not_recurse(self, make_reading):
        rf = _make_filter(trigger="v > 10", untrigger="v < 5")
        batch = [make_reading(i, v=20 if i % 2 == 0 else 1) for i in range(10_000)]

        out = []
        rf.ingest(batch, out)

        assert len(out) == 10_000
        assert rf.state == FilterState.UNTRIGGERED


# =============================================================================
# PRE-TRIGGER
# =============================================================================

class TestPretrigger:
    """Envío del buffer de pre-trigger al disparar."""

    def test_buffer_sent_before_trigger_reading(self, make_reading):
        rf = _make_filter(trigger="v > 10", pre_trigger_ms=1000)
        buffered = [make_reading(t, v=v) for t, v in [(0, 1), (300, 2), (600, 3)]]
        trigger = make_reading(900, v=20)

        out = []
        rf.ingest(buffered + [trigger], out)

        assert _values(out) == [1, 2, 3, 20]
        assert out[3] is trigger
        assert all(copy is not orig for copy, orig in zip(out[:3], buffered))
        assert rf.buffered == 0
        assert rf.get_stats()["buffered_forwarded"] == 3

    def test_buffer_window_applied(self, make_reading):
        rf = _make_filter(trigger="v > 10", pre_trigger_ms=1000)

        out = []
        rf.ingest([make_reading(0, v=1), make_reading(500, v=2), make_reading(1200, v=3)], out)
        assert rf.buffered == 2

        rf.ingest([make_reading(1300, v=20)], out)
        assert _values(out) == [2, 3, 20]

    @pytest.mark.parametrize("trigger_mode,expected", [(1, [1, 2, 20]), (2, [20])])
    def test_pretrigger_filter(self, make_reading, trigger_mode, expected):
        rf = _make_filter(trigger="v > 10", pre_trigger_ms=1000, pretrigger_filter="mode")
        batch = [
            make_reading(0, v=1, mode=1),
            make_reading(100, v=2, mode=1),
            make_reading(200, v=20, mode=trigger_mode),
        ]

        out = []
        rf.ingest(batch, out)

        assert _values(out) == expected


# =============================================================================
# PROMEDIOS
# =============================================================================

class TestAveraging:
    """Promediado mientras no está disparado."""

    def test_averages_emitted_per_period(self, make_reading):
        rf = _make_filter(trigger="v > 100", rate=1, rate_unit=RateUnit.PER_SECOND)
        batch = [make_reading(t, v=v) for t, v in [(0, 1), (300, 2), (600, 3), (1100, 4)]]

        out = []
        rf.ingest(batch, out)

        assert _values(out) == [1.0, 3.0]
        assert out[1].user_timestamp == make_reading(1100).user_timestamp
        assert rf.get_stats()["averaged"] == 2

    def test_partial_average_reset_on_trigger(self, make_reading):
        rf = _make_filter(trigger="v > 100", untrigger="v < 10", rate=1)
        batch = [
            make_reading(0, v=1),      # promedio inmediato (sin envío previo)
            make_reading(200, v=100),  # suma parcial
            make_reading(300, v=500),  # dispara → la suma parcial se descarta
            make_reading(400, v=2),    # untrigger
            make_reading(1500, v=6),
        ]

        out = []
        rf.ingest(batch, out)

        assert _values(out) == [1.0, 500, 2, 6.0]


    def test_naive_and_aware_timestamps_in_one_batch(self):
        rf = _make_filter(trigger="v > 100", pre_trigger_ms=1000, rate=1)
        naive = Reading.from_dict(
            {"asset_code": "sensor", "user_ts": "2024-01-01T00:00:00", "readings": {"v": 1}}
        )
        current = Reading.from_dict({"asset_code": "sensor", "readings": {"v": 2}})
        batch = [naive, current]

        out = []
        rf.ingest(batch, out)

        assert naive.user_timestamp.tzinfo is not None
        assert batch == []
        assert _values(out) == [1.0, 2.0]
        assert rf.buffered == 1


# =============================================================================
# RECONFIGURACIÓN
# =============================================================================

class TestReconfigure:
    """Recompilación perezosa de expresiones."""

    def test_rebuild_is_lazy_and_happens_once(self, make_reading):
        rf = _make_filter(trigger="a > 5")
        rf.ingest([make_reading(0, a=1)], [])
        first = rf.trigger_expression
        assert rf.expression_status == ExpressionStatus.COMPILED
        assert rf.get_stats()["rebuilds"] == 1

        rf.reconfigure(RateFilterConfig(trigger="b > 5", pre_trigger_ms=0))

        assert rf.expression_status == ExpressionStatus.PENDING_REBUILD
        assert rf.trigger_expression is first

        out = []
        rf.ingest([make_reading(100, b=10)], out)

        assert rf.expression_status == ExpressionStatus.COMPILED
        assert rf.trigger_expression is not first
        assert rf.get_stats()["rebuilds"] == 2
        assert rf.state == FilterState.TRIGGERED
        assert len(out) == 1

        rf.ingest([make_reading(200, b=1)], [])
        assert rf.get_stats()["rebuilds"] == 2

    def test_reconfigure_from_category(self, make_reading):
        rf = _make_filter(trigger="v > 10")
        rf.reconfigure(
            {
                "trigger": {"value": "v > 50"},
                "rate": {"value": "2"},
                "rateUnit": {"value": "per minute"},
                "preTrigger": {"value": "0"},
                "exclusions": {"value": '{"exclusions": ["fan"]}'},
            }
        )

        config = rf.config
        assert config.trigger == "v > 50"
        assert config.exclusions == ("fan",)
        assert rf.get_stats()["config"]["rate_interval_seconds"] == 30.0

        out = []
        rf.ingest([make_reading(0, v=20)], out)
        assert rf.state == FilterState.UNTRIGGERED

    def test_syntax_error_rejects_whole_reconfiguration(self):
        rf = _make_filter(trigger="v > 10", rate=5)

        with pytest.raises(ExpressionError):
            rf.reconfigure({"trigger": "v >", "rate": "1"})

        assert rf.config.trigger == "v > 10"
        assert rf.config.rate == 5
        assert rf.expression_status == ExpressionStatus.UNCOMPILED

    def test_unknown_identifier_raises_from_ingest(self, make_reading):
        rf = _make_filter(trigger="pressure > 10")
        batch = [make_reading(0, v=1)]

        with pytest.raises(ExpressionError):
            rf.ingest(batch, [])

        assert len(batch) == 1
        assert rf.expression_status == ExpressionStatus.UNCOMPILED

    def test_empty_trigger_raises_from_ingest(self, make_reading):
        rf = _make_filter(trigger="")
        with pytest.raises(ExpressionError):
            rf.ingest([make_reading(0, v=1)], [])

    def test_deeply_nested_trigger_rejected(self):
        rf = _make_filter(trigger="v > 10")

        with pytest.raises(ConfigurationError):
            rf.reconfigure({"trigger": "(" * 150 + "v > 1" + ")" * 150})

        assert rf.config.trigger == "v > 10"

    def test_from_category(self, make_reading):
        rf = RateFilter.from_category(
            "rate", {"trigger": {"value": "v > 10"}, "preTrigger": "0"}, max_variables=20
        )

        assert rf.config.trigger == "v > 10"
        assert rf.config.pre_trigger_ms == 0
        assert _values(rf.process([make_reading(0, v=11)])) == [11]

    def test_zero_variable_capacity_is_respected(self, make_reading):
        rf = RateFilter("rate", RateFilterConfig(trigger="v > 10"), max_variables=0)

        with pytest.raises(ExpressionError):
            rf.ingest([make_reading(0, v=1)], [])

    def test_empty_batch_clears_pending_flag(self, make_reading):
        rf = _make_filter(trigger="v > 10")
        rf.ingest([make_reading(0, v=1)], [])
        rf.reconfigure(RateFilterConfig(trigger="v > 20", pre_trigger_ms=0))

        rf.ingest([], [])

        assert rf.expression_status == ExpressionStatus.UNCOMPILED
        assert rf.trigger_expression is None

        rf.ingest([make_reading(100, v=1)], [])
        assert rf.expression_status == ExpressionStatus.COMPILED


# =============================================================================
# CONCURRENCIA
# =============================================================================

class TestConcurrency:
    """ingest y reconfigure se serializan."""

    def test_concurrent_ingest_and_reconfigure(self, make_reading):
        rf = _make_filter(trigger="v > 1000")
        errors = []

        def worker(worker_id):
            try:
                for i in range(50):
                    batch = [make_reading(i * 10 + j, v=j) for j in range(10)]
                    rf.ingest(batch, [])
                    if worker_id == 0 and i % 10 == 0:
                        rf.reconfigure(RateFilterConfig(trigger="v > 1000", pre_trigger_ms=0))
            except Exception as e:  # pragma: no cover - se reporta abajo
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert rf.get_stats()["received"] == 4 * 50 * 10


# =============================================================================
# SHUTDOWN
# =============================================================================

def test_shutdown_releases_state(make_reading):
    rf = _make_filter(trigger="v > 10", pre_trigger_ms=1000)
    rf.ingest([make_reading(0, v=1), make_reading(100, v=2)], [])
    assert rf.buffered == 2

    rf.shutdown()

    assert rf.buffered == 0
    assert rf.expression_status == ExpressionStatus.UNCOMPILED
