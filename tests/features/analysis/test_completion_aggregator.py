import threading
from itertools import permutations

import pytest

from sitecraft.features.analysis.models import AnalysisStatus, FindingSeverity, JobStatus
from sitecraft.features.analysis.services.completion_aggregator import AggregationOutcome, final_status
from sitecraft.features.analysis.services.scoring import SeverityWeightedScorer, combine_module_scores

# What each module "produces" in these tests: (score, [(rule_key, severity), ...]) or an error
PLAN = {
    "accessibility": (70, [("ACC_STR_04_PAGE_LANG_MISSING", FindingSeverity.critical)]),
    "structure": (85, [("ACC_STR_02_NO_H1", FindingSeverity.serious), ("ACC_STR_10_LANDMARK_MISSING", FindingSeverity.moderate)]),
    "performance": "Timed out after 120s",
}


@pytest.fixture
def analyzing(new_analysis):
    return lambda: new_analysis(status=AnalysisStatus.fetching)


def _move_to_analyzing(store, analysis_id):
    assert store.update_analysis_if(analysis_id, [AnalysisStatus.fetching], AnalysisStatus.analyzing)


def _finish(store, analysis_id, module_key, plan=PLAN):
    """Drive one job to its planned terminal state, the way a worker would."""
    job = next(job for job in store.list_jobs(analysis_id) if job.module.key == module_key)
    store.start_job(job.id)
    result = plan[module_key]
    if isinstance(result, str):
        store.fail_job(job.id, result)
        return
    score, findings = result
    rules = store.load_rule_index()
    store.complete_job_with_findings(
        job.id,
        analysis_id,
        score,
        [
            {"rule_id": rules[key], "rule_key": key, "severity": severity, "message": key, "location": None}
            for key, severity in findings
        ],
    )


class TestOrderingIndependence:
    def test_every_completion_order_aggregates_exactly_once(self, container, store, notifier, analyzing):
        results = []
        for order in permutations(PLAN):
            analysis = analyzing()
            _move_to_analyzing(store, analysis.id)
            notifier.reset_mock()

            outcomes = []
            for module_key in order:
                _finish(store, analysis.id, module_key)
                outcomes.append(container.aggregator.check(analysis.id))

            assert outcomes == [AggregationOutcome.pending, AggregationOutcome.pending, AggregationOutcome.aggregated]
            # Redundant calls after the fact are benign
            assert container.aggregator.check(analysis.id) is AggregationOutcome.race_lost
            notifier.analysis_finished.assert_called_once()

            stored = store.get_analysis(analysis.id)
            results.append(
                (stored.status, stored.overall_score, stored.module_scores, stored.total_findings, stored.critical_findings_count)
            )

        assert len(results) == 6
        assert len(set((r[0], r[1], r[3], r[4]) for r in results)) == 1
        assert all(r[2] == results[0][2] for r in results)
        assert results[0][0] is AnalysisStatus.partially_failed
        assert results[0][1] == 78  # mean(70, 85) = 77.5, rounded half up
        assert results[0][3:] == (3, 1)


class TestSimultaneousFinish:
    @pytest.mark.parametrize("callers", [2, 8])
    def test_concurrent_checks_produce_one_winner(self, container, store, notifier, analyzing, callers):
        analysis = analyzing()
        _move_to_analyzing(store, analysis.id)
        for module_key in PLAN:
            _finish(store, analysis.id, module_key)

        barrier = threading.Barrier(callers)
        outcomes = []
        errors = []
        lock = threading.Lock()

        def worker():
            try:
                barrier.wait(timeout=10)
                outcome = container.aggregator.check(analysis.id)
            except Exception as e:  # surfaced below
                with lock:
                    errors.append(e)
                return
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(callers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert outcomes.count(AggregationOutcome.aggregated) == 1
        assert outcomes.count(AggregationOutcome.race_lost) == callers - 1
        notifier.analysis_finished.assert_called_once()

    def test_last_two_jobs_finishing_together(self, container, store, notifier, analyzing):
        analysis = analyzing()
        _move_to_analyzing(store, analysis.id)
        _finish(store, analysis.id, "accessibility")

        barrier = threading.Barrier(2)
        outcomes = []

        def worker(module_key):
            barrier.wait(timeout=10)
            _finish(store, analysis.id, module_key)
            outcomes.append(container.aggregator.check(analysis.id))

        threads = [threading.Thread(target=worker, args=(key,)) for key in ("structure", "performance")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        # Whoever checks last sees all jobs terminal; only one call may win
        assert outcomes.count(AggregationOutcome.aggregated) == 1
        assert store.get_analysis(analysis.id).status is AnalysisStatus.partially_failed
        notifier.analysis_finished.assert_called_once()


class TestScenarios:
    def test_scenario_two_completed_one_failed(self, container, store, notifier, analyzing):
        plan = {
            "accessibility": (90, []),
            "structure": (60, [("ACC_STR_03_MULTIPLE_H1", FindingSeverity.moderate)]),
            "performance": "performance analyzer timed out after 120s",
        }
        analysis = analyzing()
        _move_to_analyzing(store, analysis.id)
        for module_key in plan:
            _finish(store, analysis.id, module_key, plan)

        assert container.aggregator.check(analysis.id) is AggregationOutcome.aggregated

        stored = store.get_analysis(analysis.id)
        assert stored.status is AnalysisStatus.partially_failed
        assert stored.overall_score == 75
        assert stored.module_scores == {"accessibility": 90, "performance": None, "structure": 60}
        assert stored.total_findings == 1
        assert stored.completed_at is not None
        analysis_id, status, summary = notifier.analysis_finished.call_args.args
        assert (analysis_id, status) == (analysis.id, AnalysisStatus.partially_failed)
        assert summary["failed_modules"] == ["performance"]

    def test_all_completed(self, container, store, analyzing):
        plan = {key: (100, []) for key in PLAN}
        analysis = analyzing()
        _move_to_analyzing(store, analysis.id)
        for module_key in plan:
            _finish(store, analysis.id, module_key, plan)

        container.aggregator.check(analysis.id)

        stored = store.get_analysis(analysis.id)
        assert stored.status is AnalysisStatus.completed
        assert stored.overall_score == 100
        assert stored.error_message is None

    def test_all_failed_has_no_score(self, container, store, analyzing):
        plan = {key: "boom" for key in PLAN}
        analysis = analyzing()
        _move_to_analyzing(store, analysis.id)
        for module_key in plan:
            _finish(store, analysis.id, module_key, plan)

        container.aggregator.check(analysis.id)

        stored = store.get_analysis(analysis.id)
        assert stored.status is AnalysisStatus.failed
        assert stored.overall_score is None
        assert "3 of 3 module(s) failed" in stored.error_message

    def test_open_job_keeps_analysis_pending(self, container, store, notifier, analyzing):
        analysis = analyzing()
        _move_to_analyzing(store, analysis.id)
        _finish(store, analysis.id, "accessibility")

        assert container.aggregator.check(analysis.id) is AggregationOutcome.pending
        assert store.get_analysis(analysis.id).status is AnalysisStatus.analyzing
        notifier.analysis_finished.assert_not_called()

    def test_cancelled_analysis_is_never_finalized(self, container, store, notifier, analyzing):
        analysis = analyzing()
        _move_to_analyzing(store, analysis.id)
        container.cancel_analysis(analysis.id)
        notifier.reset_mock()

        assert container.aggregator.check(analysis.id) is AggregationOutcome.race_lost
        assert store.get_analysis(analysis.id).status is AnalysisStatus.cancelled
        notifier.analysis_finished.assert_not_called()


class TestFetchFailureFinalization:
    def test_finalizes_once(self, container, store, notifier, analyzing):
        analysis = analyzing()

        first = container.aggregator.finalize_fetch_failure(analysis.id, "Asset fetch failed: DNS")
        second = container.aggregator.finalize_fetch_failure(analysis.id, "Asset fetch failed: DNS")

        assert (first, second) == (AggregationOutcome.aggregated, AggregationOutcome.race_lost)
        assert store.get_analysis(analysis.id).status is AnalysisStatus.failed
        notifier.analysis_finished.assert_called_once()


class TestScoring:
    @pytest.mark.parametrize(
        "scores, expected",
        [
            ([70, 85], 78),
            ([60, 84, 97], 80),
            ([1, 2], 2),
            ([100], 100),
            ([None, 40], 40),
            ([], None),
            ([None], None),
        ],
    )
    def test_combine_module_scores_rounds_half_up(self, scores, expected):
        assert combine_module_scores(scores) == expected

    def test_severity_weighted_score_is_floored_at_zero(self):
        scorer = SeverityWeightedScorer()

        assert scorer.score([]) == 100
        assert scorer.score([FindingSeverity.critical, FindingSeverity.minor]) == 72
        assert scorer.score([FindingSeverity.critical] * 5) == 0

    def test_final_status(self):
        assert final_status([JobStatus.completed, JobStatus.completed]) is AnalysisStatus.completed
        assert final_status([JobStatus.completed, JobStatus.failed]) is AnalysisStatus.partially_failed
        assert final_status([JobStatus.failed]) is AnalysisStatus.failed
