import threading

from bt_chooser.chooser import ChooserSession, ChooserParams, OneShotResolver, FALLBACK_LOWEST_ID
from bt_chooser.states import AdapterPresence, DiscoveryState, Outcome, ChooserEvent


class Recorder:
    def __init__(self):
        self.outcomes = []
        self.rescans = 0

    def outcome(self, o):
        self.outcomes.append(o)

    def rescan(self):
        self.rescans += 1


class HoldingPolicy:
    """Intercepts offers (while .intercept is set) and keeps the resolvers for the test to redeem."""
    def __init__(self):
        self.offers = []
        self.intercept = True

    def offer_selection(self, devices, resolver):
        self.offers.append((list(devices), resolver))
        return self.intercept


class MemLog:
    def __init__(self):
        self.records = []

    def write(self, obj):
        self.records.append(obj)

    def msgs(self, typ=None):
        return [r["msg"] for r in self.records if typ is None or r["type"] == typ]


def make_session(policy=None, params=None, logger=None):
    rec = Recorder()
    s = ChooserSession(rec.outcome, policy=policy, on_rescan=rec.rescan, params=params, logger=logger)
    return s, rec


def test_unauthorized_cancels_immediately():
    s, rec = make_session()
    s.adapter_presence_changed(AdapterPresence.UNAUTHORIZED)
    assert rec.outcomes == [Outcome.cancelled()]
    # nothing afterwards changes the outcome
    s.device_sighted("AA:BB", False, "Widget")
    s.discovery_state_changed(DiscoveryState.IDLE)
    s.adapter_presence_changed(AdapterPresence.POWERED_ON)
    assert rec.outcomes == [Outcome.cancelled()]
    assert s.presence is AdapterPresence.UNAUTHORIZED


def test_other_presences_are_recorded_only():
    s, rec = make_session()
    for p in (AdapterPresence.ABSENT, AdapterPresence.POWERED_OFF, AdapterPresence.POWERED_ON):
        s.adapter_presence_changed(p)
        assert s.presence is p
    assert rec.outcomes == []
    assert not s.resolved


def test_failed_to_start_cancels():
    s, rec = make_session()
    s.discovery_state_changed(DiscoveryState.DISCOVERING)
    assert s.refreshing
    s.discovery_state_changed(DiscoveryState.FAILED_TO_START)
    assert not s.refreshing
    assert rec.outcomes == [Outcome.cancelled()]


def test_retry_ceiling_five_rescans_then_cancel():
    s, rec = make_session()
    for _ in range(5):
        s.discovery_state_changed(DiscoveryState.IDLE)
    assert rec.rescans == 5
    assert rec.outcomes == []
    s.discovery_state_changed(DiscoveryState.IDLE)
    assert rec.rescans == 5
    assert rec.outcomes == [Outcome.cancelled()]
    assert s.num_retries == 6


def test_retry_ceiling_is_configurable_and_logged():
    log = MemLog()
    s, rec = make_session(params=ChooserParams(max_scan_retries=1), logger=log)
    s.discovery_state_changed(DiscoveryState.IDLE)
    s.discovery_state_changed(DiscoveryState.IDLE)
    assert rec.rescans == 1
    assert rec.outcomes == [Outcome.cancelled()]
    assert "scan_retries_exhausted" in log.msgs("info")


def test_refresh_suppression_between_discovering_pair():
    s, rec = make_session()
    s.discovery_state_changed(DiscoveryState.DISCOVERING)
    s.device_sighted("AA:BB", True, "Widget")
    assert len(s.registry) == 0
    assert rec.outcomes == []
    s.discovery_state_changed(DiscoveryState.DISCOVERING)
    assert not s.refreshing
    s.device_sighted("AA:BB", True, "Widget")
    assert rec.outcomes == [Outcome.selected("AA:BB")]


def test_idle_clears_refreshing():
    s, rec = make_session()
    s.discovery_state_changed(DiscoveryState.DISCOVERING)
    s.discovery_state_changed(DiscoveryState.IDLE)
    assert not s.refreshing
    assert rec.rescans == 1


def test_new_sighting_auto_resolves():
    s, rec = make_session()
    s.device_sighted("AA:BB", False, "Widget")
    assert rec.outcomes == [Outcome.selected("AA:BB")]
    assert rec.outcomes[0].event is ChooserEvent.SELECTED
    assert s.registry.name_of("AA:BB") == "Widget"


def test_first_resolution_wins_over_later_sightings():
    s, rec = make_session()
    s.device_sighted("AA:BB", False, "Widget")
    s.device_sighted("CC:DD", False, "Gadget")
    s.device_sighted("AA:BB", True, "Renamed")
    assert rec.outcomes == [Outcome.selected("AA:BB")]
    # registry stays as it was when the session ended
    assert len(s.registry) == 1


def test_fallback_on_idle_uses_registry_order():
    policy = HoldingPolicy()
    s, rec = make_session(policy=policy)
    s.device_sighted("Z", False, "Zed")
    s.device_sighted("A", False, "Ay")
    s.device_sighted("Z", True, "Zed 2")
    assert len(policy.offers) == 3

    # the policy stops intercepting; IDLE falls back to the first entry
    policy.intercept = False
    s.discovery_state_changed(DiscoveryState.IDLE)
    assert rec.outcomes == [Outcome.selected("Z")]


def test_fallback_lowest_id_option():
    policy = HoldingPolicy()
    s, rec = make_session(policy=policy, params=ChooserParams(fallback=FALLBACK_LOWEST_ID))
    s.device_sighted("Z", False, "Zed")
    s.device_sighted("A", False, "Ay")
    policy.intercept = False
    s.discovery_state_changed(DiscoveryState.IDLE)
    assert rec.outcomes == [Outcome.selected("A")]


def test_unchanged_sighting_does_not_offer():
    policy = HoldingPolicy()
    s, rec = make_session(policy=policy)
    s.device_sighted("AA:BB", False, "Widget")
    s.device_sighted("AA:BB", False, "Other")
    assert len(policy.offers) == 1
    assert s.registry.name_of("AA:BB") == "Widget"


def test_policy_override_defers_resolution():
    policy = HoldingPolicy()
    s, rec = make_session(policy=policy)
    s.device_sighted("AA:BB", False, "Widget")
    s.discovery_state_changed(DiscoveryState.IDLE)
    assert rec.outcomes == []
    devices, resolver = policy.offers[-1]
    assert [(d.device_id, d.device_name) for d in devices] == [("AA:BB", "Widget")]

    assert resolver("") is True
    assert rec.outcomes == [Outcome.cancelled()]


def test_policy_choice_is_trusted_and_one_shot():
    policy = HoldingPolicy()
    s, rec = make_session(policy=policy)
    s.device_sighted("AA:BB", False, "Widget")
    s.device_sighted("CC:DD", False, "Gadget")
    _, first = policy.offers[0]
    _, second = policy.offers[1]

    # not in the registry, still accepted
    assert first("EE:FF") is True
    assert first("AA:BB") is False
    assert second("CC:DD") is True
    assert rec.outcomes == [Outcome.selected("EE:FF")]


def test_plain_callable_policy():
    seen = []

    def choose(devices, resolver):
        seen.append([d.device_id for d in devices])
        resolver(devices[-1].device_id)
        return True

    s, rec = make_session(policy=choose)
    s.device_sighted("AA:BB", False, "Widget")
    assert seen == [["AA:BB"]]
    assert rec.outcomes == [Outcome.selected("AA:BB")]


def test_policy_resolving_but_not_intercepting_still_resolves_once():
    def choose(devices, resolver):
        resolver("CC:DD")
        return False

    s, rec = make_session(policy=choose)
    s.device_sighted("AA:BB", False, "Widget")
    assert rec.outcomes == [Outcome.selected("CC:DD")]


def test_resolver_from_other_thread():
    policy = HoldingPolicy()
    s, rec = make_session(policy=policy)
    s.device_sighted("AA:BB", False, "Widget")
    _, resolver = policy.offers[0]

    threads = [threading.Thread(target=resolver, args=(f"dev{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(rec.outcomes) == 1
    assert rec.outcomes[0].is_selected


def test_empty_upstream_id_is_accepted():
    s, rec = make_session()
    s.device_sighted("", False, "")
    assert rec.outcomes == [Outcome.selected("")]


def test_events_after_outcome_are_logged_and_ignored():
    log = MemLog()
    s, rec = make_session(logger=log)
    s.discovery_state_changed(DiscoveryState.FAILED_TO_START)
    s.discovery_state_changed(DiscoveryState.IDLE)
    assert rec.rescans == 0
    assert s.num_retries == 0
    assert log.msgs("event") == ["cancelled"]
    assert "ignored_after_outcome" in log.msgs("debug")


def test_one_shot_resolver_guard():
    calls = []
    r = OneShotResolver(calls.append)
    assert not r.used
    assert r("x") is True
    assert r.used
    assert r("y") is False
    assert calls == ["x"]


def test_offer_is_logged_with_device_list():
    log = MemLog()
    policy = HoldingPolicy()
    s, rec = make_session(policy=policy, logger=log)
    s.device_sighted("AA:BB", False, "Widget")
    offers = [r for r in log.records if r["msg"] == "offer_selection"]
    assert offers[0]["data"]["devices"] == [{"deviceId": "AA:BB", "deviceName": "Widget"}]
    assert offers[0]["data"]["intercepted"] is True
