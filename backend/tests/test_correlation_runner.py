from datetime import date, datetime, timezone

import pytest

from driver_identity.errors import ConfigurationError, FetchError, RosterLoadError
from driver_identity.schemas.correlation import CorrelationRunConfig, RunReport, build_run_config
from driver_identity.services.correlation import (
    CorrelationRunner, OutcomeStatus, RecordOutcome, fold_outcome, summarize
)
from driver_identity.services.records import Match, MatchMethod, Source

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def seeded_store(store, make_driver, make_record):
    store.add_driver(make_driver("d-john", "John", "Smith", employee_id="E100"))
    store.add_driver(make_driver("d-michael", "Michael", "Jones"))
    store.add_driver(make_driver("d-jane", "Jane", "Doe"))

    store.add_record(make_record("r1", "john   SMITH"))
    store.add_record(make_record("r2", "Mike Jones"))
    store.add_record(make_record("r3", "Someone Unrelated"))
    store.add_record(make_record("r4", "J Smith", employee_id="E100"))
    return store


def make_runner(store):
    return CorrelationRunner(store, store, clock=lambda: FIXED_NOW)


def test_run_persists_matches(seeded_store):
    report = make_runner(seeded_store).run(CorrelationRunConfig())

    assert report.scanned == 4
    assert report.matched == 3
    assert report.persisted == 3
    assert report.no_match == 1
    assert report.below_threshold == 0
    assert report.failed == 0
    assert report.by_method == {"exact_match": 1, "fuzzy_match": 1, "employee_id_match": 1}
    assert report.started_at == FIXED_NOW
    assert report.finished_at == FIXED_NOW

    r1 = seeded_store.get_record(Source.LYTX, "r1").association
    assert r1.driver_id == "d-john"
    assert r1.confidence == 0.95
    assert r1.method == MatchMethod.EXACT_MATCH
    assert r1.updated_at == FIXED_NOW
    assert seeded_store.get_record(Source.LYTX, "r2").association.driver_id == "d-michael"
    assert seeded_store.get_record(Source.LYTX, "r3").association is None


def test_rerun_only_touches_unresolved(seeded_store):
    runner = make_runner(seeded_store)
    runner.run(CorrelationRunConfig())
    seeded_store.update_calls.clear()

    second = runner.run(CorrelationRunConfig())

    assert second.scanned == 1
    assert second.no_match == 1
    assert second.persisted == 0
    assert seeded_store.update_calls == []


def test_dry_run_never_writes(seeded_store):
    report = make_runner(seeded_store).run(CorrelationRunConfig(dry_run=True))

    assert report.dry_run
    assert report.matched == 3
    assert report.persisted == 0
    assert seeded_store.update_calls == []
    assert all(r.association is None for r in seeded_store.records[Source.LYTX.value].values())


def test_below_threshold_is_discarded(seeded_store):
    report = make_runner(seeded_store).run(CorrelationRunConfig(min_confidence=0.85))

    assert report.below_threshold == 1
    assert report.persisted == 2
    assert seeded_store.get_record(Source.LYTX, "r2").association is None


def test_persistence_failure_does_not_abort(seeded_store):
    seeded_store.fail_updates.add("r1")

    report = make_runner(seeded_store).run(CorrelationRunConfig())

    assert report.failed == 1
    assert report.persisted == 2
    assert report.scanned == 4
    assert seeded_store.get_record(Source.LYTX, "r1").association is None


def test_lost_conditional_write_is_counted_as_conflict(seeded_store):
    seeded_store.conflicting.add("r2")

    report = make_runner(seeded_store).run(CorrelationRunConfig())

    assert report.conflicts == 1
    assert report.persisted == 2
    assert report.failed == 0


def test_manual_assignment_is_never_revisited(seeded_store, make_record, make_manual_association):
    seeded_store.add_record(make_record("r5", "John Smith", association=make_manual_association("d-jane")))

    report = make_runner(seeded_store).run(CorrelationRunConfig())

    assert report.scanned == 4
    association = seeded_store.get_record(Source.LYTX, "r5").association
    assert association.driver_id == "d-jane"
    assert association.method == MatchMethod.MANUAL_ASSIGNMENT


def test_records_without_name_are_not_fetched(seeded_store, make_record):
    seeded_store.add_record(make_record("r6", "   "))
    seeded_store.add_record(make_record("r7", None))

    report = make_runner(seeded_store).run(CorrelationRunConfig())

    assert report.scanned == 4


def test_keyset_pagination(store, make_driver, make_record):
    store.add_driver(make_driver("d-john", "John", "Smith"))
    for i in range(5):
        store.add_record(make_record(f"r{i}", f"Nobody Known {i}"))

    report = make_runner(store).run(CorrelationRunConfig(batch_size=2, sources=[Source.LYTX]))

    # Unmatched rows stay unresolved; the cursor still moves past them
    assert report.scanned == 5
    assert report.no_match == 5
    assert report.by_source["lytx"].pages == 3
    assert store.fetch_calls == [("lytx", None), ("lytx", "r1"), ("lytx", "r3")]


def test_sources_and_breakdown(seeded_store, make_record):
    seeded_store.add_record(make_record("g1", "Jane Doe", source=Source.GUARDIAN))
    seeded_store.add_record(make_record("m1", "Doe Jane", source=Source.MTDATA))

    report = make_runner(seeded_store).run(CorrelationRunConfig(sources=[Source.GUARDIAN, Source.MTDATA]))

    assert report.scanned == 2
    assert set(report.by_source) == {"guardian", "mtdata"}
    assert report.by_source["guardian"].by_method == {"exact_match": 1}
    assert report.by_source["mtdata"].by_method == {"fuzzy_match": 1}
    assert seeded_store.get_record(Source.LYTX, "r1").association is None


def test_single_driver_scope(seeded_store):
    report = make_runner(seeded_store).run(CorrelationRunConfig(driver_id="d-michael"))

    assert report.roster_size == 1
    assert report.persisted == 1
    assert seeded_store.get_record(Source.LYTX, "r2").association.driver_id == "d-michael"
    assert seeded_store.get_record(Source.LYTX, "r1").association is None


def test_unknown_driver_scope_is_rejected(seeded_store):
    with pytest.raises(ConfigurationError):
        make_runner(seeded_store).run(CorrelationRunConfig(driver_id="nobody"))


def test_date_window(store, make_driver, make_record):
    store.add_driver(make_driver("d-john", "John", "Smith"))
    store.add_record(make_record("r1", "John Smith", occurred_at=datetime(2025, 1, 31, 23, 59)))
    store.add_record(make_record("r2", "John Smith", occurred_at=datetime(2025, 2, 1, 8, 0)))
    store.add_record(make_record("r3", "John Smith", occurred_at=datetime(2025, 2, 28, 23, 0)))
    store.add_record(make_record("r4", "John Smith", occurred_at=datetime(2025, 3, 1, 0, 0)))

    config = CorrelationRunConfig(date_from=date(2025, 2, 1), date_to=date(2025, 2, 28))
    report = make_runner(store).run(config)

    assert report.persisted == 2
    assert store.get_record(Source.LYTX, "r2").association is not None
    assert store.get_record(Source.LYTX, "r3").association is not None
    assert store.get_record(Source.LYTX, "r4").association is None


def test_cancellation_between_records(seeded_store):
    checks = []

    def should_cancel():
        checks.append(1)
        return len(checks) > 2

    report = make_runner(seeded_store).run(CorrelationRunConfig(), should_cancel=should_cancel)

    assert report.cancelled
    assert report.scanned == 2
    assert seeded_store.get_record(Source.LYTX, "r1").association is not None
    assert seeded_store.get_record(Source.LYTX, "r2").association is not None
    assert seeded_store.get_record(Source.LYTX, "r4").association is None


def test_fetch_failure_carries_partial_report(store, make_driver, make_record):
    store.add_driver(make_driver("d-john", "John", "Smith"))
    for i in range(4):
        store.add_record(make_record(f"r{i}", "John Smith"))
    store.fail_fetch_on_call = 2

    with pytest.raises(FetchError) as excinfo:
        make_runner(store).run(CorrelationRunConfig(batch_size=2, sources=[Source.LYTX]))

    partial = excinfo.value.report
    assert partial.scanned == 2
    assert partial.persisted == 2
    assert store.get_record(Source.LYTX, "r0").association is not None


def test_roster_failure_is_fatal(seeded_store):
    seeded_store.fail_roster = True

    with pytest.raises(RosterLoadError):
        make_runner(seeded_store).run(CorrelationRunConfig())


@pytest.mark.parametrize("overrides", [
    {"min_confidence": 1.5},
    {"batch_size": 0},
    {"max_workers": 0},
    {"sources": []},
    {"date_from": date(2025, 2, 1), "date_to": date(2025, 1, 1)},
])
def test_invalid_config_is_rejected(seeded_store, overrides):
    with pytest.raises(ConfigurationError):
        make_runner(seeded_store).run(CorrelationRunConfig(**overrides))


def test_missing_store_is_rejected():
    with pytest.raises(ConfigurationError):
        CorrelationRunner(None, None).run(CorrelationRunConfig())


def test_parallel_matching_gives_same_report(seeded_store):
    report = make_runner(seeded_store).run(CorrelationRunConfig(max_workers=4, dry_run=True))

    assert report.matched == 3
    assert report.no_match == 1
    assert report.by_method == {"exact_match": 1, "fuzzy_match": 1, "employee_id_match": 1}


def test_fold_outcome_is_pure():
    report = RunReport()
    outcome = RecordOutcome("lytx", "r1", OutcomeStatus.PERSISTED,
                            match=Match("d1", 0.95, MatchMethod.EXACT_MATCH))

    folded = fold_outcome(report, outcome)

    assert report.scanned == 0
    assert report.by_source == {}
    assert folded.scanned == 1
    assert folded.persisted == 1
    assert folded.by_method == {"exact_match": 1}
    assert folded.by_source["lytx"].persisted == 1


def test_build_run_config_uses_settings_defaults():
    config = build_run_config(dry_run=True, sources=["guardian"], batch_size=None)

    assert config.dry_run
    assert config.sources == [Source.GUARDIAN]
    assert config.batch_size == 500
    assert config.min_confidence == 0.7


def test_build_run_config_rejects_bad_values():
    with pytest.raises(ConfigurationError):
        build_run_config(sources=["telematics"])
    with pytest.raises(ConfigurationError):
        build_run_config(min_confidence=-0.1)


def test_summarize(seeded_store):
    report = make_runner(seeded_store).run(CorrelationRunConfig(dry_run=True))

    line = summarize(report)
    assert "scanned=4" in line
    assert "exact_match=1" in line
