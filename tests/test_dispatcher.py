from __future__ import annotations

import pytest

from conftest import FakeResponse, FakeSession, RecordingNotifier
from monadoring.config import AlertConfig
from monadoring.dispatcher import AlertDispatcher
from monadoring.events import (
    AllOffline,
    MissedBlock,
    Network,
    Recovered,
    RpcFailover,
    RpcRecovered,
    ValidatorKey,
)
from monadoring.notifiers import PAGERDUTY_EVENTS_URL


def missed(round_: int, validator: str = "42", network: Network = Network.MAINNET, streak=None) -> MissedBlock:
    return MissedBlock(validator, network, round_, None, consecutive_misses=streak)


def recovered(round_: int, validator: str = "42", network: Network = Network.MAINNET) -> Recovered:
    return Recovered(validator, network, round_, None)


@pytest.fixture()
def backends():
    return RecordingNotifier("telegram"), RecordingNotifier("discord"), RecordingNotifier("pagerduty")


@pytest.fixture()
def dispatcher(backends) -> AlertDispatcher:
    telegram, discord, pagerduty = backends
    return AlertDispatcher(telegram, discord, pagerduty, threshold=5)


def test_every_miss_goes_to_chat_backends(dispatcher, backends):
    telegram, discord, pagerduty = backends
    for r in range(1, 4):
        result = dispatcher.dispatch(missed(r))
        assert result.deliveries == {"telegram": True, "discord": True}
        assert result.consecutive_misses == r
    assert len(telegram.events) == 3
    assert len(discord.events) == 3
    assert pagerduty.events == []


def test_pagerduty_escalation(dispatcher, backends):
    _, _, pagerduty = backends
    for r in range(1, 5):
        assert "pagerduty" not in dispatcher.dispatch(missed(r)).deliveries
    assert pagerduty.events == []

    result = dispatcher.dispatch(missed(5))
    assert result.deliveries["pagerduty"] is True
    assert len(pagerduty.events) == 1

    for r in range(6, 9):
        assert "pagerduty" not in dispatcher.dispatch(missed(r)).deliveries
    assert len(pagerduty.events) == 1

    result = dispatcher.dispatch(recovered(9))
    assert result.deliveries["pagerduty"] is True
    assert isinstance(pagerduty.events[-1], Recovered)
    assert len(pagerduty.events) == 2

    for r in range(10, 14):
        dispatcher.dispatch(missed(r))
    assert len(pagerduty.events) == 2


def test_recovery_without_page_does_not_resolve(dispatcher, backends):
    telegram, _, pagerduty = backends
    dispatcher.dispatch(missed(1))
    result = dispatcher.dispatch(recovered(2))
    assert "pagerduty" not in result.deliveries
    assert pagerduty.events == []
    assert telegram.events[-1].previous_streak == 1


def test_recovery_resets_counter(dispatcher):
    key = ValidatorKey("42", Network.MAINNET)
    dispatcher.dispatch(missed(1))
    dispatcher.dispatch(missed(2))
    assert dispatcher.consecutive_misses(key) == 2
    result = dispatcher.dispatch(recovered(3))
    assert result.consecutive_misses == 0
    assert dispatcher.consecutive_misses(key) == 0


def test_counter_fills_missing_streak(dispatcher, backends):
    telegram, _, _ = backends
    dispatcher.dispatch(missed(1))
    dispatcher.dispatch(missed(2))
    assert telegram.events[-1].consecutive_misses == 2

    dispatcher.dispatch(missed(3, streak=7))
    assert telegram.events[-1].consecutive_misses == 7


def test_escalation_is_per_validator_and_network(dispatcher, backends):
    _, _, pagerduty = backends
    for r in range(1, 5):
        dispatcher.dispatch(missed(r, validator="1"))
        dispatcher.dispatch(missed(r, validator="1", network=Network.TESTNET))
        dispatcher.dispatch(missed(r, validator="2"))
    assert pagerduty.events == []
    dispatcher.dispatch(missed(5, validator="1", network=Network.TESTNET))
    assert [e.network for e in pagerduty.events] == [Network.TESTNET]


def test_one_failing_backend_does_not_block_others(backends):
    telegram, _, pagerduty = backends
    discord = RecordingNotifier("discord", error=RuntimeError("boom"))
    dispatcher = AlertDispatcher(telegram, discord, pagerduty)
    result = dispatcher.dispatch(missed(1))
    assert result.deliveries == {"telegram": True, "discord": False}
    assert len(telegram.events) == 1
    assert dispatcher.failure_counts["discord"] == 1


def test_failed_delivery_is_counted_not_retried(backends):
    _, discord, pagerduty = backends
    telegram = RecordingNotifier("telegram", result=False)
    dispatcher = AlertDispatcher(telegram, discord, pagerduty)
    dispatcher.dispatch(missed(1))
    dispatcher.dispatch(missed(2))
    assert len(telegram.events) == 2
    assert dispatcher.failure_counts["telegram"] == 2
    assert dispatcher.failure_counts["discord"] == 0


def test_page_guard_holds_even_if_trigger_fails(backends):
    telegram, discord, _ = backends
    pagerduty = RecordingNotifier("pagerduty", result=False)
    dispatcher = AlertDispatcher(telegram, discord, pagerduty, threshold=1)
    dispatcher.dispatch(missed(1))
    dispatcher.dispatch(missed(2))
    assert len(pagerduty.events) == 1


def test_disabled_backends_are_skipped():
    telegram = RecordingNotifier("telegram", enabled=False)
    discord = RecordingNotifier("discord")
    pagerduty = RecordingNotifier("pagerduty", enabled=False)
    dispatcher = AlertDispatcher(telegram, discord, pagerduty, threshold=1)
    result = dispatcher.dispatch(missed(1))
    assert result.deliveries == {"discord": True}
    assert telegram.events == []
    assert pagerduty.events == []
    assert dispatcher.alert_status == {"telegram": False, "discord": True, "pagerduty": False}


def test_rpc_failover_alerts_once_until_recovered(dispatcher, backends):
    telegram, _, pagerduty = backends
    failover = RpcFailover(Network.MAINNET, "Primary", "Secondary", "offline")

    assert dispatcher.dispatch(failover).deliveries == {"telegram": True, "discord": True}
    assert dispatcher.dispatch(failover).suppressed is True

    testnet = RpcFailover(Network.TESTNET, "A", "B")
    assert dispatcher.dispatch(testnet).suppressed is False

    dispatcher.dispatch(RpcRecovered(Network.MAINNET, "Secondary", "Primary"))
    assert dispatcher.dispatch(failover).suppressed is False
    assert len(telegram.events) == 4
    assert pagerduty.events == []


def test_all_offline_alerts_once_per_episode(dispatcher, backends):
    telegram, _, _ = backends
    first = AllOffline(Network.MAINNET, ("https://a",), since=100.0, downtime_minutes=3, chain_progressing=False)
    assert not dispatcher.dispatch(first).suppressed
    assert dispatcher.dispatch(first).suppressed

    second = AllOffline(Network.MAINNET, ("https://a",), since=900.0, downtime_minutes=3, chain_progressing=True)
    assert not dispatcher.dispatch(second).suppressed
    assert len(telegram.events) == 2


def test_unsupported_event_raises(dispatcher):
    with pytest.raises(TypeError):
        dispatcher.dispatch("missed")


def test_from_config_wires_http_backends():
    session = FakeSession(default=FakeResponse(200, {"ok": True}))
    alerts = AlertConfig(
        telegram_token="t0k",
        telegram_chat_id="99",
        discord_webhook_url="https://discord.example/hook",
        pagerduty_routing_key="rk",
        pagerduty_threshold=2,
    )
    dispatcher = AlertDispatcher.from_config(alerts, session=session)
    dispatcher.dispatch(missed(1))
    dispatcher.dispatch(missed(2))

    assert len(session.posted("api.telegram.org/bott0k/sendMessage")) == 2
    assert len(session.posted("discord.example/hook")) == 2
    pages = session.posted(PAGERDUTY_EVENTS_URL)
    assert len(pages) == 1
    assert pages[0]["json"]["event_action"] == "trigger"
    assert pages[0]["json"]["routing_key"] == "rk"


def test_rearm_lets_next_failover_through(dispatcher, backends):
    telegram, _, _ = backends
    failover = RpcFailover(Network.MAINNET, "Primary", "Secondary", "offline")
    dispatcher.dispatch(failover)
    assert dispatcher.dispatch(failover).suppressed is True

    dispatcher.rearm_failover(Network.TESTNET)
    assert dispatcher.dispatch(failover).suppressed is True

    dispatcher.rearm_failover(Network.MAINNET)
    assert dispatcher.dispatch(failover).suppressed is False
    assert len(telegram.events) == 2


def test_page_counts_dispatched_misses_not_tracker_streak(backends):
    telegram, discord, pagerduty = backends
    dispatcher = AlertDispatcher(telegram, discord, pagerduty, threshold=5)
    # tracker streak seeded at 1 from a first-seen timeout, so it runs one ahead
    for streak in range(2, 6):
        dispatcher.dispatch(missed(streak, streak=streak))
    assert telegram.events[-1].consecutive_misses == 5
    assert pagerduty.events == []

    dispatcher.dispatch(missed(6, streak=6))
    assert len(pagerduty.events) == 1
