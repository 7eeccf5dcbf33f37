from contact_intake.prometheus import IntakeMetrics


def test_intake_metrics_counters():
    metrics = IntakeMetrics()

    metrics.inc_dispatched()
    metrics.inc_dispatch_error()
    metrics.inc_silent("too_fast")
    metrics.inc_visible("")
    metrics.inc_rate_limited()
    metrics.inc_store_fallback()

    output = metrics.generate_latest()
    assert b"contact_dispatched_total 1.0" in output
    assert b"contact_dispatch_errors_total 1.0" in output
    assert b'contact_silent_rejections_total{reason="too_fast"} 1.0' in output
    assert b'contact_visible_rejections_total{code="unknown"} 1.0' in output
    assert b"contact_rate_limited_total 1.0" in output
    assert b"contact_rate_store_fallbacks_total 1.0" in output


def test_instances_do_not_share_registries():
    first = IntakeMetrics()
    second = IntakeMetrics()
    first.inc_dispatched()
    assert b"contact_dispatched_total 0.0" in second.generate_latest()
