import logging
import time

import pytest

from sitecraft.features.analysis.models import AnalysisStatus, FindingSeverity, JobStatus
from sitecraft.features.analysis.schemas.finding import FindingDraft
from sitecraft.features.analysis.schemas.tasks import FetchTask
from sitecraft.features.analysis.services.outcome import OutcomeKind


@pytest.fixture
def module_tasks(container, new_analysis, job_queue):
    """Run the fetch step and return the fanned-out ModuleTasks keyed by module."""
    analysis = new_analysis()
    container.fetcher.handle(FetchTask(analysis_id=analysis.id, asset_path=analysis.asset_path))
    return {call.args[1].module_key: call.args[1] for call in job_queue.enqueue.call_args_list}


class _StubAnalyzer:
    def __init__(self, module_key, result=None, delay=0.0, error=None, before=None):
        self.module_key = module_key
        self.result = result or []
        self.delay = delay
        self.error = error
        self.before = before
        self.calls = 0

    def analyze(self, assets):
        self.calls += 1
        if self.before is not None:
            self.before()
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


def _job(store, task):
    return store.get_job(task.analysis_id, task.module_id)


class TestHappyPath:
    def test_completes_job_with_findings_and_score(self, container, store, module_tasks, sample_scores):
        task = module_tasks["accessibility"]

        outcome = container.lifecycle.handle(task)

        assert outcome.kind is OutcomeKind.ok
        job = _job(store, task)
        assert job.status is JobStatus.completed
        assert job.attempts == 1
        assert job.score == sample_scores["accessibility"]

        findings = store.list_findings(task.analysis_id)
        assert sorted(f.rule_key for f in findings) == [
            "ACC_IMG_01_ALT_TEXT_MISSING",
            "ACC_STR_04_PAGE_LANG_MISSING",
        ]
        assert all(f.analysis_job_id == job.id for f in findings)

    def test_last_module_triggers_aggregation(self, container, store, notifier, module_tasks, sample_scores):
        outcomes = [container.lifecycle.handle(task) for task in module_tasks.values()]

        assert [o.detail["aggregation"] for o in outcomes] == ["pending", "pending", "aggregated"]
        analysis = store.get_analysis(module_tasks["accessibility"].analysis_id)
        assert analysis.status is AnalysisStatus.completed
        assert analysis.module_scores == sample_scores
        assert analysis.overall_score == 80  # mean(60, 84, 97) = 80.33
        notifier.analysis_finished.assert_called_once()


class TestRedelivery:
    def test_redelivered_task_is_a_no_op(self, container, store, notifier, module_tasks):
        for task in module_tasks.values():
            container.lifecycle.handle(task)
        task = module_tasks["structure"]
        before = len(store.list_findings(task.analysis_id))

        outcome = container.lifecycle.handle(task)

        assert outcome.kind is OutcomeKind.skipped
        assert len(store.list_findings(task.analysis_id)) == before
        assert _job(store, task).attempts == 1
        notifier.analysis_finished.assert_called_once()

    def test_running_job_is_resumed(self, container, store, module_tasks):
        task = module_tasks["structure"]
        store.start_job(_job(store, task).id)  # first worker died mid-analysis

        outcome = container.lifecycle.handle(task)

        assert outcome.kind is OutcomeKind.ok
        job = _job(store, task)
        assert job.status is JobStatus.completed
        assert job.attempts == 2

    def test_crash_before_aggregation_is_recovered_by_redelivery(self, container, store, notifier, module_tasks):
        tasks = list(module_tasks.values())
        for task in tasks[:-1]:
            container.lifecycle.handle(task)
        # Last worker commits its job, then dies before calling the aggregator
        last = tasks[-1]
        job = _job(store, last)
        store.start_job(job.id)
        store.complete_job_with_findings(job.id, last.analysis_id, 100, [])
        assert store.get_analysis(last.analysis_id).status is AnalysisStatus.analyzing

        outcome = container.lifecycle.handle(last)

        assert outcome.kind is OutcomeKind.skipped
        assert store.get_analysis(last.analysis_id).status is AnalysisStatus.completed
        notifier.analysis_finished.assert_called_once()


class TestFailures:
    def test_timeout_fails_the_job(self, container, store, module_tasks):
        container.lifecycle.timeout_seconds = 0.2
        container.analyzers.register(_StubAnalyzer("performance", delay=1.0))
        task = module_tasks["performance"]

        outcome = container.lifecycle.handle(task)

        assert outcome.kind is OutcomeKind.terminal
        job = _job(store, task)
        assert job.status is JobStatus.failed
        assert "timed out after 0.2s" in job.error_message
        assert store.list_findings(task.analysis_id) == []

    def test_analyzer_error_degrades_analysis_to_partially_failed(self, container, store, notifier, module_tasks):
        container.analyzers.register(_StubAnalyzer("structure", error=RuntimeError("parser exploded")))

        for task in module_tasks.values():
            container.lifecycle.handle(task)

        analysis_id = module_tasks["structure"].analysis_id
        assert _job(store, module_tasks["structure"]).error_message == "structure analyzer failed: parser exploded"
        analysis = store.get_analysis(analysis_id)
        assert analysis.status is AnalysisStatus.partially_failed
        assert analysis.module_scores["structure"] is None
        assert analysis.overall_score == 79  # mean(60, 97) = 78.5, rounded half up
        assert "structure: structure analyzer failed" in analysis.error_message
        notifier.analysis_finished.assert_called_once()

    def test_unknown_rule_keys_are_dropped(self, container, store, module_tasks, caplog):
        container.analyzers.register(
            _StubAnalyzer(
                "structure",
                result=[
                    FindingDraft(rule_key="ACC_STR_02_NO_H1", severity=FindingSeverity.serious, message="no h1"),
                    FindingDraft(rule_key="STR_99_MADE_UP", severity=FindingSeverity.critical, message="?"),
                ],
            )
        )
        task = module_tasks["structure"]

        with caplog.at_level(logging.WARNING):
            container.lifecycle.handle(task)

        job = _job(store, task)
        assert job.findings_count == 1
        assert job.score == 85
        assert "Unknown rule key 'STR_99_MADE_UP'" in caplog.text

    def test_malformed_analyzer_output_fails_the_job(self, container, store, module_tasks):
        container.analyzers.register(_StubAnalyzer("structure", result=[{"rule_key": "ACC_STR_02_NO_H1"}]))
        task = module_tasks["structure"]

        outcome = container.lifecycle.handle(task)

        assert outcome.kind is OutcomeKind.terminal
        assert "malformed findings" in _job(store, task).error_message


class TestCancellation:
    def test_cancelled_analysis_fails_job_without_running_analyzer(self, container, store, module_tasks):
        stub = _StubAnalyzer("accessibility")
        container.analyzers.register(stub)
        task = module_tasks["accessibility"]
        store.update_analysis_if(task.analysis_id, [AnalysisStatus.analyzing], AnalysisStatus.cancelled)

        outcome = container.lifecycle.handle(task)

        assert outcome.kind is OutcomeKind.terminal
        assert stub.calls == 0
        job = _job(store, task)
        assert job.status is JobStatus.failed
        assert job.error_message == "Analysis cancelled"

    def test_cancel_during_analysis_discards_findings(self, container, store, notifier, module_tasks):
        task = module_tasks["accessibility"]
        container.analyzers.register(
            _StubAnalyzer(
                "accessibility",
                result=[FindingDraft(rule_key="ACC_STR_04_PAGE_LANG_MISSING", severity=FindingSeverity.critical, message="x")],
                before=lambda: container.cancel_analysis(task.analysis_id),
            )
        )

        outcome = container.lifecycle.handle(task)

        assert outcome.kind is OutcomeKind.terminal
        assert store.list_findings(task.analysis_id) == []
        assert store.get_analysis(task.analysis_id).status is AnalysisStatus.cancelled
        # pending siblings were failed by the cancel itself
        assert {job.status for job in store.list_jobs(task.analysis_id)} == {JobStatus.failed}
        notifier.analysis_finished.assert_called_once()


class TestScenarios:
    def test_findings_clean_module_and_timeout(self, container, store, notifier, module_tasks):
        container.lifecycle.timeout_seconds = 0.2
        container.analyzers.register(
            _StubAnalyzer(
                "accessibility",
                result=[
                    FindingDraft(rule_key="ACC_STR_04_PAGE_LANG_MISSING", severity=FindingSeverity.critical, message="no lang"),
                    FindingDraft(rule_key="ACC_IMG_01_ALT_TEXT_MISSING", severity=FindingSeverity.serious, message="no alt"),
                    FindingDraft(rule_key="ACC_FRM_01_LABEL_MISSING", severity=FindingSeverity.minor, message="no label"),
                ],
            )
        )
        container.analyzers.register(_StubAnalyzer("structure", result=[]))
        container.analyzers.register(_StubAnalyzer("performance", delay=1.0))

        for task in module_tasks.values():
            container.lifecycle.handle(task)

        analysis_id = module_tasks["accessibility"].analysis_id
        performance_job = _job(store, module_tasks["performance"])
        assert performance_job.status is JobStatus.failed
        assert "timed out after 0.2s" in performance_job.error_message

        analysis = store.get_analysis(analysis_id)
        assert analysis.status is AnalysisStatus.partially_failed
        assert analysis.module_scores == {"accessibility": 57, "structure": 100, "performance": None}
        assert analysis.overall_score == 79  # mean(57, 100) = 78.5, rounded half up
        assert analysis.total_findings == 3
        assert analysis.critical_findings_count == 1

        accessibility_job = _job(store, module_tasks["accessibility"])
        findings = store.list_findings(analysis_id)
        assert len(findings) == 3
        assert {f.analysis_job_id for f in findings} == {accessibility_job.id}
        notifier.analysis_finished.assert_called_once()
