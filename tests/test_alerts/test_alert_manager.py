"""Tests for AlertManager"""

import asyncio
import os
import tempfile
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from alert_engine.alerts.alert_evaluator import EvaluationContext
from alert_engine.alerts.alert_manager import AlertConfig, AlertManager
from alert_engine.alerts.alert_rule import AlertCondition, AlertRuleBuilder, AlertState
from alert_engine.alerts.anomaly_detector import AnomalyConfig
from alert_engine.alerts.channels import NotificationConfig
from alert_engine.alerts.errors import NotFoundError, UnsupportedChannelTypeError, ValidationError
from alert_engine.exporters.prometheus_exporter import EngineMetrics

REQUEST_PATH = 'alert_engine.alerts.channels.webhook_channel.requests.request'


def make_rule(rule_id="high_cpu", cooldown=5000, actions=(), severity="warning", threshold=80, duration=0):
    return (
        AlertRuleBuilder(rule_id)
        .set_name(rule_id.replace("_", " ").title())
        .set_severity(severity)
        .add_condition(AlertCondition(metric="cpu", operator=">", threshold=threshold, duration=duration))
        .set_cooldown(cooldown)
        .set_actions(list(actions))
        .build()
    )


def ctx(timestamp, cpu=90):
    return EvaluationContext(metric_values={"cpu": [cpu]}, timestamp=timestamp)


def console(channel_id="console", enabled=True):
    return NotificationConfig(id=channel_id, name=channel_id, type="console", enabled=enabled)


@pytest.fixture
def manager():
    manager = AlertManager()
    yield manager
    manager.dispose()


class TestRuleRegistry:

    def test_add_and_get(self, manager):
        rule = make_rule()
        manager.add_rule(rule)

        assert manager.get_rule("high_cpu") is rule
        assert manager.get_all_rules() == [rule]
        assert manager.get_rule("missing") is None

    def test_remove_purges_state_and_cooldown(self, manager):
        rule = make_rule(duration=1000)
        manager.add_rule(rule)
        asyncio.run(manager.evaluate(ctx(0)))
        manager.cooldowns[rule.id] = 99999

        assert manager.remove_rule(rule.id) is True

        assert manager.get_rule(rule.id) is None
        assert rule.id not in manager.cooldowns
        assert manager.evaluator.get_condition_state(rule.id, "cpu") is None
        assert manager.remove_rule(rule.id) is False

    def test_replacing_rule_drops_its_state(self, manager):
        manager.add_rule(make_rule("a"))
        manager.add_rule(make_rule("b", duration=1000))
        asyncio.run(manager.evaluate(ctx(0)))
        assert "a" in manager.cooldowns

        replacement = make_rule("b", threshold=50, duration=1000)
        manager.add_rule(replacement)
        manager.add_rule(make_rule("a"))

        assert [r.id for r in manager.get_all_rules()] == ["a", "b"]
        assert manager.get_rule("b") is replacement
        assert manager.evaluator.get_condition_state("b", "cpu") is None
        assert "a" not in manager.cooldowns

    def test_update_rule(self, manager):
        rule = make_rule()
        manager.add_rule(rule)

        updated = manager.update_rule("high_cpu", {"name": "Renamed"}, severity="critical")

        assert updated.name == "Renamed"
        assert updated.severity == "critical"
        assert updated.updated_at >= rule.updated_at
        assert manager.get_rule("high_cpu") is updated

    def test_update_unknown_rule(self, manager):
        with pytest.raises(NotFoundError, match="Rule nope not found"):
            manager.update_rule("nope", name="x")

    @pytest.mark.parametrize("updates", [
        {"bogus": 1},
        {"id": "other"},
        {"severity": "extreme"},
        {"conditions": []},
        {"cooldown": -5},
    ])
    def test_update_rejects_invalid_fields(self, manager, updates):
        manager.add_rule(make_rule())
        with pytest.raises(ValidationError):
            manager.update_rule("high_cpu", updates)

    def test_update_keeps_registration_order(self, manager):
        manager.add_rule(make_rule("a"))
        manager.add_rule(make_rule("b"))

        manager.update_rule("a", cooldown=1)

        assert [r.id for r in manager.get_all_rules()] == ["a", "b"]


class TestChannels:

    def test_add_get_remove(self, manager):
        channel = manager.add_channel(console())

        assert manager.get_channel("console") is channel
        assert manager.get_all_channels() == [channel]
        assert manager.remove_channel("console") is True
        assert manager.get_channel("console") is None

    def test_unsupported_type(self, manager):
        with pytest.raises(UnsupportedChannelTypeError):
            manager.add_channel(NotificationConfig(id="x", name="x", type="carrier_pigeon"))


class TestEvaluate:

    @pytest.mark.asyncio
    async def test_trigger_updates_rule_and_history(self, manager):
        rule = make_rule()
        manager.add_rule(rule)

        results = await manager.evaluate(ctx(0, cpu=85))

        assert len(results) == 1
        assert results[0].triggered is True
        assert rule.state == AlertState.ACTIVE
        assert rule.last_triggered == 0
        assert manager.cooldowns[rule.id] == 5000

        history = manager.get_history()
        assert len(history) == 1
        assert history[0].rule_id == rule.id
        assert history[0].triggered is True
        assert history[0].message == "Alert 'High Cpu' triggered: cpu > 80 (actual: 85.00)"

    @pytest.mark.asyncio
    async def test_not_triggered_leaves_no_history(self, manager):
        manager.add_rule(make_rule())

        results = await manager.evaluate(ctx(0, cpu=10))

        assert results[0].triggered is False
        assert manager.get_history() == []
        assert manager.get_rule("high_cpu").state == AlertState.PENDING

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_retrigger(self, manager):
        manager.add_rule(make_rule(cooldown=5000))

        assert (await manager.evaluate(ctx(0)))[0].triggered is True
        # Skipped entirely while cooling down
        assert await manager.evaluate(ctx(3000)) == []
        assert len(manager.get_history()) == 1

        results = await manager.evaluate(ctx(6000))
        assert results[0].triggered is True
        assert len(manager.get_history()) == 2
        assert manager.get_rule("high_cpu").last_triggered == 6000

    @pytest.mark.asyncio
    async def test_retrigger_exactly_at_cooldown_end(self, manager):
        manager.add_rule(make_rule(cooldown=5000))

        await manager.evaluate(ctx(0))

        assert (await manager.evaluate(ctx(5000)))[0].triggered is True

    @pytest.mark.asyncio
    async def test_disabled_and_silenced_rules_are_skipped(self, manager):
        disabled = make_rule("disabled")
        disabled.enabled = False
        manager.add_rule(disabled)
        manager.add_rule(make_rule("silenced"))
        manager.silence_rule("silenced")

        assert await manager.evaluate(ctx(0)) == []

        manager.unsilence_rule("silenced")
        results = await manager.evaluate(ctx(1))
        assert [r.rule_id for r in results] == ["silenced"]

    @pytest.mark.asyncio
    async def test_results_and_history_in_registration_order(self, manager):
        for rule_id in ("c", "a", "b"):
            manager.add_rule(make_rule(rule_id))

        results = await manager.evaluate(ctx(0))

        assert [r.rule_id for r in results] == ["c", "a", "b"]
        assert [h.rule_id for h in manager.history] == ["c", "a", "b"]

    @pytest.mark.asyncio
    async def test_evaluator_failure_does_not_stop_other_rules(self, manager):
        manager.add_rule(make_rule("broken"))
        manager.add_rule(make_rule("fine"))
        original = manager.evaluator.evaluate

        def flaky(rule, context):
            if rule.id == "broken":
                raise RuntimeError("boom")
            return original(rule, context)

        manager.evaluator.evaluate = flaky

        results = await manager.evaluate(ctx(0))

        assert [r.rule_id for r in results] == ["fine"]
        assert [h.rule_id for h in manager.get_history()] == ["fine"]


class TestNotifications:

    @pytest.mark.asyncio
    async def test_webhook_success_and_email_failure_in_one_entry(self, manager):
        manager.add_channel(NotificationConfig(
            id="hook", name="Ops hook", type="webhook", config={"url": "https://hooks.example.com/a"},
        ))
        manager.add_channel(NotificationConfig(id="mail", name="Ops mail", type="email", config={}))
        manager.add_rule(make_rule(actions=["hook", "mail"]))

        response = MagicMock()
        response.raise_for_status.return_value = None
        with patch(REQUEST_PATH, return_value=response):
            results = await manager.evaluate(ctx(0))

        entry = manager.get_history()[0]
        outcomes = [(r.channel_id, r.success) for r in entry.notification_results]
        assert outcomes == [("hook", True), ("mail", False)]
        assert entry.notification_results[0].error is None
        assert entry.notification_results[1].error == "Email recipient not configured"
        assert results[0].notification_results == entry.notification_results

    @pytest.mark.asyncio
    async def test_missing_and_disabled_channels_are_skipped(self, manager, capsys):
        manager.add_channel(console("off", enabled=False))
        manager.add_channel(console("on"))
        manager.add_rule(make_rule(actions=["ghost", "off", "on"]))

        await manager.evaluate(ctx(0))

        results = manager.get_history()[0].notification_results
        assert [r.channel_id for r in results] == ["on"]
        assert results[0].success is True
        assert "[ALERT WARNING]" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_raising_channel_is_recorded_as_failure(self, manager):
        channel = manager.add_channel(console("bad"))
        channel.send = AsyncMock(side_effect=RuntimeError("exploded"))
        manager.add_channel(console("good"))
        manager.add_rule(make_rule(actions=["bad", "good"]))

        results = await manager.evaluate(ctx(0))

        outcomes = results[0].notification_results
        assert [(r.channel_id, r.success) for r in outcomes] == [("bad", False), ("good", True)]
        assert outcomes[0].error == "exploded"

    @pytest.mark.asyncio
    async def test_slow_channel_does_not_serialize_rules(self, manager):
        started = []

        async def slow_send(payload):
            started.append(payload.rule.id)
            await asyncio.sleep(0.05)
            return await original_send(payload)

        channel = manager.add_channel(console("slow"))
        original_send = channel.send
        channel.send = slow_send
        for rule_id in ("a", "b", "c"):
            manager.add_rule(make_rule(rule_id, actions=["slow"]))

        loop = asyncio.get_running_loop()
        begin = loop.time()
        await manager.evaluate(ctx(0))
        elapsed = loop.time() - begin

        assert started == ["a", "b", "c"]
        assert elapsed < 0.14
        assert [h.rule_id for h in manager.history] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_payload_contents(self, manager):
        channel = manager.add_channel(console("spy"))
        channel.send = AsyncMock(wraps=channel.send)
        rule = make_rule(actions=["spy"], severity="critical")
        manager.add_rule(rule)

        await manager.evaluate(ctx(42, cpu=99))

        payload = channel.send.call_args.args[0]
        assert payload.rule is rule
        assert payload.severity == "critical"
        assert payload.timestamp == 42
        assert payload.metadata["conditions"][0].actual_value == 99


class TestHistory:

    @pytest.mark.asyncio
    async def test_bounded_fifo(self):
        manager = AlertManager(AlertConfig(max_history_size=3))
        manager.add_rule(make_rule(cooldown=0))

        for t in range(5):
            await manager.evaluate(ctx(t))

        assert len(manager.history) == 3
        assert [h.timestamp for h in manager.get_history()] == [4, 3, 2]

    @pytest.mark.asyncio
    async def test_most_recent_first_with_limit(self, manager):
        manager.add_rule(make_rule("a", cooldown=0))
        manager.add_rule(make_rule("b", cooldown=0))

        await manager.evaluate(ctx(10))
        await manager.evaluate(ctx(20))

        assert [(h.rule_id, h.timestamp) for h in manager.get_history(limit=3)] == [
            ("b", 20), ("a", 20), ("b", 10),
        ]
        assert [h.timestamp for h in manager.get_history_for_rule("a")] == [20, 10]
        assert len(manager.get_history_for_rule("a", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_clear_history(self, manager):
        manager.add_rule(make_rule())
        await manager.evaluate(ctx(0))

        manager.clear_history()

        assert manager.get_history() == []

    @pytest.mark.asyncio
    async def test_history_to_dict(self, manager):
        manager.add_channel(console())
        manager.add_rule(make_rule(actions=["console"]))
        await manager.evaluate(ctx(0))

        data = manager.get_history()[0].to_dict()

        assert data["rule_id"] == "high_cpu"
        assert data["notification_results"][0]["channel_id"] == "console"


class TestLifecycle:

    def test_resolve_and_silence(self, manager):
        manager.add_rule(make_rule())

        manager.resolve_rule("high_cpu")
        assert manager.get_rule("high_cpu").state == AlertState.RESOLVED

        manager.silence_rule("high_cpu")
        assert manager.get_rule("high_cpu").state == AlertState.SILENCED

    def test_unknown_rule(self, manager):
        with pytest.raises(NotFoundError):
            manager.resolve_rule("nope")

    @pytest.mark.asyncio
    async def test_active_rule_stays_active_when_condition_clears(self, manager):
        manager.add_rule(make_rule(cooldown=0))

        await manager.evaluate(ctx(0, cpu=90))
        await manager.evaluate(ctx(1, cpu=10))

        assert manager.get_rule("high_cpu").state == AlertState.ACTIVE


class TestStats:

    @pytest.mark.asyncio
    async def test_get_stats(self, manager):
        manager.add_rule(make_rule("a", severity="critical"))
        manager.add_rule(make_rule("b", severity="warning"))
        disabled = make_rule("c", severity="warning")
        disabled.enabled = False
        manager.add_rule(disabled)
        manager.add_channel(console())

        await manager.evaluate(ctx(0))
        stats = manager.get_stats()

        assert stats.total_rules == 3
        assert stats.active_rules == 2
        assert stats.total_alerts == 2
        assert stats.alerts_by_severity == {"critical": 1, "warning": 2, "info": 0}
        assert stats.channel_count == 1
        assert stats.to_dict()["total_rules"] == 3


class TestAnomalies:

    def test_disabled_returns_empty(self, manager):
        for t in range(30):
            assert manager.detect_anomalies("latency", 10 if t < 29 else 500, t) == []

    def test_enabled_delegates(self):
        manager = AlertManager(AlertConfig(enable_anomaly_detection=True))
        for t in range(25):
            manager.detect_anomalies("latency", 10, t)

        anomalies = manager.detect_anomalies("latency", 200, 25)

        assert "spike" in [a.type for a in anomalies]

    def test_anomaly_config_is_used(self):
        manager = AlertManager(AlertConfig(
            enable_anomaly_detection=True,
            anomaly_config=AnomalyConfig(min_data_points=50),
        ))
        for t in range(25):
            manager.detect_anomalies("latency", 10, t)

        assert manager.detect_anomalies("latency", 200, 25) == []


class TestMetrics:

    @pytest.mark.asyncio
    async def test_records_engine_metrics(self):
        metrics = EngineMetrics()
        manager = AlertManager(AlertConfig(enable_anomaly_detection=True), metrics=metrics)
        manager.add_channel(console())
        manager.add_channel(NotificationConfig(id="mail", name="mail", type="email"))
        manager.add_rule(make_rule(actions=["console", "mail"], severity="critical"))

        await manager.evaluate(ctx(0))
        for t in range(25):
            manager.detect_anomalies("latency", 10, t)
        manager.detect_anomalies("latency", 200, 25)

        assert metrics.get_sample('alert_engine_evaluations_total') == 1
        assert metrics.get_sample('alert_engine_alerts_triggered_total', {'severity': 'critical'}) == 1
        assert metrics.get_sample(
            'alert_engine_notifications_total', {'channel': 'console', 'status': 'success'}) == 1
        assert metrics.get_sample(
            'alert_engine_notifications_total', {'channel': 'mail', 'status': 'failure'}) == 1
        assert metrics.get_sample('alert_engine_anomalies_total', {'type': 'spike'}) == 1
        assert metrics.get_sample('alert_engine_rules') == 1
        assert metrics.get_sample('alert_engine_channels') == 2
        assert b'alert_engine_evaluations_total' in metrics.exposition()


class TestFromSettings:

    def test_builds_manager(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write("""
alert_rules:
  - id: high_cpu
    name: High CPU
    severity: critical
    conditions:
      - metric: cpu
        threshold: 80
    actions: [stdout]
""")
            rules_file = f.name

        settings = {
            'alerting': {
                'enable_anomaly_detection': True,
                'evaluation_interval': 2000,
                'max_history_size': 10,
                'alert_rules_file': rules_file,
                'anomaly': {'sensitivity': 0.9},
            },
            'channels': [{'id': 'stdout', 'type': 'console'}],
            'metrics': {'enabled': True, 'port': 9877},
        }

        try:
            with patch('alert_engine.exporters.prometheus_exporter.start_http_server') as start_server:
                manager = AlertManager.from_settings(settings)
        finally:
            os.unlink(rules_file)

        start_server.assert_called_once()
        assert manager.config.evaluation_interval == 2000
        assert manager.history.maxlen == 10
        assert manager.anomaly_detector.get_config().sensitivity == 0.9
        assert [r.id for r in manager.get_all_rules()] == ["high_cpu"]
        assert manager.get_channel("stdout").get_type() == "console"
        assert manager.metrics is not None


class TestResetAndDispose:

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self):
        manager = AlertManager(AlertConfig(enable_anomaly_detection=True))
        manager.add_channel(console())
        manager.add_rule(make_rule(duration=0))
        await manager.evaluate(ctx(0))
        manager.detect_anomalies("latency", 1, 0)

        manager.reset()

        assert manager.get_all_rules() == []
        assert manager.get_all_channels() == []
        assert manager.get_history() == []
        assert manager.cooldowns == {}
        assert manager.evaluator.condition_states == {}
        assert manager.anomaly_detector.sample_count("latency") == 0

    @pytest.mark.asyncio
    async def test_dispose_stops_auto_evaluation(self):
        manager = AlertManager(AlertConfig(evaluation_interval=10))
        manager.start_auto_evaluation(lambda: ctx(0))
        assert manager.auto_evaluating is True

        manager.dispose()

        assert manager.auto_evaluating is False
        assert manager.get_all_rules() == []
