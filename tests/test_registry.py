from __future__ import annotations

import logging

import pytest

from promstore.adapter import StorageAdapter
from promstore.backends import InMemoryStore
from promstore.registry import LabelCountError, MetricsRegistry


def _registry(**kwargs) -> MetricsRegistry:
    return MetricsRegistry(StorageAdapter(InMemoryStore()), **kwargs)


def test_counter_renders_with_namespace() -> None:
    reg = _registry()
    c = reg.counter("requests_total", "Total requests")
    c.inc()
    c.inc_by(5)
    text = reg.render()
    assert "# HELP app_requests_total Total requests" in text
    assert "# TYPE app_requests_total counter" in text
    assert "app_requests_total 6\n" in text


def test_empty_namespace_keeps_bare_names() -> None:
    reg = _registry(namespace="")
    reg.counter("requests_total", "Total").inc()
    assert "requests_total 1\n" in reg.render()


def test_counter_rejects_negative_increment() -> None:
    reg = _registry()
    with pytest.raises(ValueError):
        reg.counter("c", "").inc_by(-1)


def test_counter_keeps_counting_after_float_increment() -> None:
    reg = _registry()
    c = reg.counter("work_seconds_total", "Work")
    c.inc_by(0.5)
    c.inc()
    c.inc_by(2)
    assert "app_work_seconds_total 3.5\n" in reg.render()


def test_gauge_set_then_integer_increment() -> None:
    reg = _registry()
    g = reg.gauge("workers", "Workers")
    g.set(5)
    g.inc()
    assert "app_workers 6\n" in reg.render()


def test_gauge_set_inc_dec() -> None:
    reg = _registry()
    g = reg.gauge("in_flight", "In flight", ["worker"])
    g.set(10, ["w1"])
    g.inc(["w1"])
    g.inc_by(2.5, ["w1"])
    g.dec(["w1"])
    g.dec_by(0.5, ["w1"])
    assert 'app_in_flight{worker="w1"} 12' in reg.render()


def test_histogram_defaults_and_custom_buckets() -> None:
    reg = _registry()
    reg.histogram("default_seconds", "Default").observe(0.3)
    reg.histogram("sizes", "Sizes", ["kind"], buckets=[100, 10, 50]).observe(25, ["img"])
    text = reg.render()
    assert 'app_default_seconds_bucket{le="0.25"} 0' in text
    assert 'app_default_seconds_bucket{le="0.5"} 1' in text
    assert 'app_default_seconds_bucket{le="10"} 1' in text
    assert 'app_sizes_bucket{kind="img",le="10"} 0' in text
    assert 'app_sizes_bucket{kind="img",le="50"} 1' in text
    assert 'app_sizes_count{kind="img"} 1' in text


def test_summary_is_not_implemented() -> None:
    reg = _registry()
    with pytest.raises(NotImplementedError):
        reg.summary("s", "Summary").observe(1.0)


def test_with_timestamp_returns_new_builder() -> None:
    reg = _registry()
    plain = reg.gauge("temp", "Temp")
    stamped = plain.with_timestamp(1700000000000)
    assert plain.timestamp is None
    assert stamped.timestamp == 1700000000000
    stamped.set(21)
    assert "app_temp 21 1700000000000\n" in reg.render()


def test_with_timestamp_defaults_to_now(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("promstore.registry.time.time", lambda: 1700000000.5)
    reg = _registry()
    reg.counter("events_total", "Events").with_timestamp().inc()
    assert "app_events_total 1 1700000000500\n" in reg.render()


def test_label_mismatch_throw_policy() -> None:
    reg = _registry(label_mismatch="throw")
    c = reg.counter("c", "", ["a", "b"])
    with pytest.raises(LabelCountError) as exc:
        c.inc(["only"])
    assert "expected 2 labels (a, b) but got 1 values (only)" in str(exc.value)
    g = reg.gauge("g", "", ["a"])
    with pytest.raises(LabelCountError):
        g.set(1, [])
    with pytest.raises(LabelCountError):
        g.inc_by(1, ["x", "y"])


def test_label_mismatch_log_policy_skips_write(caplog: pytest.LogCaptureFixture) -> None:
    reg = _registry(label_mismatch="log")
    with caplog.at_level(logging.WARNING, logger="promstore.registry"):
        reg.gauge("g", "", ["a"]).set(1, [])
    assert any("Label count mismatch" in r.getMessage() for r in caplog.records)
    assert reg.collect() == []


def test_label_mismatch_ignore_policy_is_silent(caplog: pytest.LogCaptureFixture) -> None:
    reg = _registry(label_mismatch="ignore")
    with caplog.at_level(logging.WARNING, logger="promstore.registry"):
        reg.histogram("h", "", ["a"], buckets=[1]).observe(1, [])
    assert caplog.records == []
    assert reg.collect() == []


def test_reregistering_with_different_shape_fails() -> None:
    reg = _registry()
    reg.counter("c", "", ["a"])
    assert reg.counter("c", "", ["a"]).metric.label_names == ("a",)
    with pytest.raises(ValueError):
        reg.counter("c", "", ["b"])
    with pytest.raises(ValueError):
        reg.gauge("c", "", ["a"])
    reg.histogram("h", "", buckets=[1, 2])
    with pytest.raises(ValueError):
        reg.histogram("h", "", buckets=[1, 3])


@pytest.mark.parametrize(
    "name,labels",
    [("bad-name", ()), ("ok", ("bad-label",)), ("ok2", ("__reserved",)), ("ok3", ("a", "a"))],
)
def test_invalid_names_are_rejected(name: str, labels: tuple[str, ...]) -> None:
    with pytest.raises(ValueError):
        _registry().counter(name, "", labels)


def test_histogram_cannot_use_le_label() -> None:
    with pytest.raises(ValueError):
        _registry().histogram("h", "", ["le"])


def test_gauge_callback_evaluated_on_render() -> None:
    reg = _registry()
    state = {"v": 3}
    reg.register_gauge_callback("queue_size", "Queue size", lambda: state["v"], ["queue"], ["jobs"])
    assert 'app_queue_size{queue="jobs"} 3' in reg.render()
    state["v"] = 9
    assert 'app_queue_size{queue="jobs"} 9' in reg.render()


def test_failing_gauge_callback_does_not_break_render(caplog: pytest.LogCaptureFixture) -> None:
    reg = _registry()

    def boom() -> float:
        raise RuntimeError("source down")

    reg.register_gauge_callback("broken", "Broken", boom)
    reg.counter("ok_total", "Ok").inc()
    with caplog.at_level(logging.ERROR, logger="promstore.registry"):
        text = reg.render()
    assert "app_ok_total 1" in text
    assert "app_broken" not in text
    assert any("gauge callback" in r.getMessage() for r in caplog.records)


def test_wipe_clears_everything() -> None:
    reg = _registry()
    reg.counter("c", "").inc()
    reg.wipe()
    assert reg.render() == "\n"
    reg.wipe()


def test_multiple_metrics_render_together_in_name_order() -> None:
    reg = _registry()
    reg.gauge("zeta", "Z").set(1)
    reg.counter("alpha_total", "A").inc()
    reg.histogram("mid", "M", buckets=[1]).observe(0.5)
    text = reg.render()
    assert text.index("app_alpha_total") < text.index("app_mid") < text.index("app_zeta")


def test_render_strict_default_and_override() -> None:
    reg = _registry(render_strict=False)
    assert reg.render(strict=True) == "\n"
    assert reg.content_type == "text/plain; version=0.0.4; charset=utf-8"
