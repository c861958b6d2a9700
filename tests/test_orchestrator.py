"""Tests for the generation orchestrator."""

import logging
import threading
import time
from unittest.mock import Mock

import pytest

from pycodeframe.config import CodeframeConfig
from pycodeframe.generation.orchestrator import (
    DispatchPacer,
    FailureKind,
    GenerationOrchestrator,
    GenerationResult,
    GenerationStatus,
    GroupFailure,
)
from pycodeframe.models import ColumnData, QuestionGroup


AWARENESS_ANSWERS = (
    ["Acme"] * 5
    + ["Globex"] * 3
    + ["Initech"] * 2
)


@pytest.fixture
def awareness_group():
    """Ten single-brand answers in one column."""
    column = ColumnData(
        name="Q1",
        index=0,
        values=tuple(AWARENESS_ANSWERS),
        row_ids=tuple(str(1000 + i) for i in range(10)),
    )
    return QuestionGroup(group_id="A", name="Awareness", question_type="unaided-awareness", columns=(column,))


@pytest.fixture
def description_group():
    columns = (
        ColumnData(name="B1r1", index=1, values=("Tasty", "Cheap", "")),
        ColumnData(name="B1r2", index=2, values=("Too sweet", "", "Good value")),
    )
    return QuestionGroup(group_id="B", name="Descriptions", question_type="brand-description", columns=columns)


def awareness_reply():
    return {
        "codeframe": [
            {"code": "C01", "label": "Acme", "definition": "Mentions of Acme"},
            {"code": "C02", "label": "Globex", "definition": "Mentions of Globex"},
            {"code": "C03", "label": "Initech", "definition": "Mentions of Initech"},
        ],
        "codedResponses": [
            {"responseText": text, "columnName": "Q1", "columnIndex": 0,
             "codesAssigned": [{"Acme": "C01", "Globex": "C02", "Initech": "C03"}[text]]}
            for text in AWARENESS_ANSWERS
        ],
        "brandHierarchies": {"Acme": []},
    }


def description_reply():
    return {
        "codeframe": [
            {"code": "D01", "label": "Taste", "definition": "flavour"},
            {"code": "D02", "label": "Value", "definition": "price, cheap"},
        ],
        "codedResponses": [
            {"responseText": "Tasty", "columnName": "B1r1", "codesAssigned": ["D01"]},
            {"responseText": "Cheap", "columnName": "B1r1", "codesAssigned": ["D02"]},
            {"responseText": "Too sweet", "columnName": "B1r2", "codesAssigned": ["D01"]},
            {"responseText": "Good value", "columnName": "B1r2", "codesAssigned": ["D02"]},
        ],
    }


def is_for(prompt, question_type):
    return f'"questionType": "{question_type}"' in prompt


def make_llm(fail_descriptions=False):
    """Mock oracle answering per question type."""
    llm = Mock()
    llm.generate.return_value = "Acme leads awareness."

    def reply(prompt, system=None, **kwargs):
        if is_for(prompt, "unaided-awareness"):
            return awareness_reply()
        if fail_descriptions:
            raise ConnectionError("oracle unreachable")
        return description_reply()

    llm.generate_json.side_effect = reply
    return llm


@pytest.fixture
def orchestrator():
    config = CodeframeConfig()
    config.generation.max_workers = 2
    return GenerationOrchestrator(config=config)


class TestGenerate:
    """Tests for a first generation pass."""

    def test_single_group(self, orchestrator, awareness_group):
        result = orchestrator.generate([awareness_group], llm=make_llm())

        assert result.status == GenerationStatus.COMPLETE
        frame = result.codeframes["unaided-awareness"]
        assert [c.id for c in frame] == ["C01", "C02", "C03", "OTHER"]
        assert [c.count for c in frame] == [5, 3, 2, 0]
        assert [c.percentage for c in frame] == pytest.approx([50.0, 30.0, 20.0, 0.0])
        assert frame.total_responses == 10

    def test_numeric_ids_and_catch_all(self, orchestrator, awareness_group):
        result = orchestrator.generate([awareness_group], llm=make_llm())
        frame = result.codeframes["unaided-awareness"]

        assert [c.numeric_id for c in frame] == [1001, 1002, 1003, 1004]
        assert sum(1 for c in frame if c.is_catch_all) == 1

    def test_rows_are_mapped_in_order(self, orchestrator, awareness_group):
        result = orchestrator.generate([awareness_group], llm=make_llm())

        row_ids = [r.row_id for r in result.coded_responses]
        assert row_ids == [str(1000 + i) for i in range(10)]
        assert all(r.source == "oracle" for r in result.coded_responses)

    def test_reply_extras_are_kept(self, orchestrator, awareness_group):
        result = orchestrator.generate([awareness_group], llm=make_llm())
        assert result.successes[0].brand_hierarchies == {"Acme": []}

    def test_statistics_are_per_group(self, orchestrator, awareness_group, description_group):
        result = orchestrator.generate([awareness_group, description_group], llm=make_llm())

        descriptions = result.codeframes["brand-description"]
        assert descriptions.total_responses == 4
        assert descriptions.get("D01").percentage == pytest.approx(50.0)

    def test_one_call_per_group(self, orchestrator, awareness_group, description_group):
        llm = make_llm()
        orchestrator.generate([awareness_group, description_group], llm=llm)

        assert llm.generate_json.call_count == 2
        systems = [call.kwargs["system"] for call in llm.generate_json.call_args_list]
        assert systems[0] != systems[1]

    def test_outcomes_keep_submission_order(self, orchestrator, awareness_group, description_group):
        result = orchestrator.generate([description_group, awareness_group], llm=make_llm())
        assert [o.group.group_id for o in result.outcomes] == ["B", "A"]

    def test_insights_need_two_successes(self, orchestrator, awareness_group, description_group):
        llm = make_llm()
        single = orchestrator.generate([awareness_group], llm=llm)
        both = orchestrator.generate([awareness_group, description_group], llm=llm)

        assert single.insights is None
        assert both.insights == "Acme leads awareness."

    def test_insight_failure_is_not_fatal(self, orchestrator, awareness_group, description_group):
        llm = make_llm()
        llm.generate.side_effect = TimeoutError("slow")

        result = orchestrator.generate([awareness_group, description_group], llm=llm)

        assert result.status == GenerationStatus.COMPLETE
        assert result.insights is None


class TestValidation:
    """Tests for setup errors and invalid replies."""

    def test_no_groups(self, orchestrator):
        with pytest.raises(ValueError, match="At least one"):
            orchestrator.generate([], llm=make_llm())

    def test_no_oracle(self, orchestrator, awareness_group):
        with pytest.raises(ValueError, match="No oracle"):
            orchestrator.generate([awareness_group])

    def test_duplicate_question_type(self, orchestrator, awareness_group):
        other = QuestionGroup(
            group_id="A2",
            name="Awareness again",
            question_type="unaided-awareness",
            columns=awareness_group.columns,
        )
        with pytest.raises(ValueError, match="unaided-awareness"):
            orchestrator.generate([awareness_group, other], llm=make_llm())

    def test_invalid_reply_is_a_validation_failure(self, orchestrator, awareness_group):
        llm = Mock()
        llm.generate_json.return_value = {"codeframe": []}

        result = orchestrator.generate([awareness_group], llm=llm)

        assert result.status == GenerationStatus.FAILED
        failure = result.failures[0]
        assert failure.kind == FailureKind.VALIDATION
        assert "codedResponses" in failure.message

    def test_empty_group(self, orchestrator):
        group = QuestionGroup(
            group_id="E",
            name="Empty",
            question_type="miscellaneous",
            columns=(ColumnData(name="Q9", index=0, values=("", None, "  ")),),
        )
        llm = make_llm()

        result = orchestrator.generate([group], llm=llm)

        assert result.failures[0].kind == FailureKind.VALIDATION
        llm.generate_json.assert_not_called()

    def test_unknown_code_is_rejected(self, orchestrator, awareness_group, caplog):
        reply = awareness_reply()
        reply["codedResponses"][0]["codesAssigned"] = ["C77"]
        llm = Mock()
        llm.generate_json.return_value = reply

        with caplog.at_level(logging.ERROR):
            result = orchestrator.generate([awareness_group], llm=llm)

        success = result.successes[0]
        assert len(success.rejected_responses) == 1
        assert success.rejected_responses[0].codes_assigned == ["C77"]
        assert len(success.coded_responses) == 9
        assert success.codeframe.get("C01").count == 4
        assert "C77" in caplog.text


class TestPartialAndRetry:
    """Tests for partial results and retries."""

    def test_transport_failure_gives_partial_result(self, orchestrator, awareness_group, description_group):
        llm = make_llm(fail_descriptions=True)

        result = orchestrator.generate([awareness_group, description_group], llm=llm)

        assert result.status == GenerationStatus.PARTIAL
        assert list(result.codeframes) == ["unaided-awareness"]
        failure = result.outcome_for("B")
        assert isinstance(failure, GroupFailure)
        assert failure.kind == FailureKind.TRANSPORT
        assert "oracle unreachable" in failure.message
        assert result.retryable_groups == [description_group]

    def test_retry_completes_without_touching_successes(
        self, orchestrator, awareness_group, description_group
    ):
        first = orchestrator.generate(
            [awareness_group, description_group], llm=make_llm(fail_descriptions=True)
        )
        awareness_before = first.codeframes["unaided-awareness"]
        stats_before = [(c.id, c.count, c.percentage) for c in awareness_before]

        llm = make_llm()
        merged = orchestrator.retry(first, llm=llm)

        assert merged.status == GenerationStatus.COMPLETE
        assert [o.group.group_id for o in merged.outcomes] == ["A", "B"]
        assert merged.codeframes["unaided-awareness"] is awareness_before
        assert [(c.id, c.count, c.percentage) for c in awareness_before] == stats_before
        # only the failed group went back to the oracle
        assert llm.generate_json.call_count == 1
        assert is_for(llm.generate_json.call_args.args[0], "brand-description")

    def test_retry_with_nothing_failed(self, orchestrator, awareness_group):
        result = orchestrator.generate([awareness_group], llm=make_llm())
        assert orchestrator.retry(result, llm=make_llm()) is result

    def test_standalone_retry_and_merge(self, orchestrator, awareness_group, description_group):
        first = orchestrator.generate(
            [awareness_group, description_group], llm=make_llm(fail_descriptions=True)
        )

        retried = orchestrator.retry_groups(first.retryable_groups, llm=make_llm())
        merged = first.merge(retried)

        assert retried.status == GenerationStatus.COMPLETE
        assert merged.status == GenerationStatus.COMPLETE
        assert set(merged.codeframes) == {"unaided-awareness", "brand-description"}

    def test_merge_never_replaces_successes(self, orchestrator, awareness_group):
        first = orchestrator.generate([awareness_group], llm=make_llm())
        failed = GenerationResult(outcomes=[GroupFailure(awareness_group, FailureKind.TRANSPORT, "boom")])

        merged = first.merge(failed)

        assert merged.status == GenerationStatus.COMPLETE
        assert merged.outcomes[0] is first.outcomes[0]

    def test_summary_mentions_retry(self, orchestrator, awareness_group, description_group):
        result = orchestrator.generate(
            [awareness_group, description_group], llm=make_llm(fail_descriptions=True)
        )
        summary = result.summary()

        assert summary.startswith("partial")
        assert "B (transport)" in summary


class TestCancellation:
    """Tests for run cancellation."""

    def test_cancel_before_dispatch(self, orchestrator, awareness_group, description_group):
        cancel = threading.Event()
        cancel.set()
        llm = make_llm()

        result = orchestrator.generate([awareness_group, description_group], llm=llm, cancel_event=cancel)

        assert result.status == GenerationStatus.FAILED
        assert all(f.kind == FailureKind.CANCELLED for f in result.failures)
        llm.generate_json.assert_not_called()

    def test_cancel_while_in_flight(self, orchestrator, awareness_group):
        cancel = threading.Event()
        llm = Mock()

        def reply(prompt, system=None, **kwargs):
            cancel.set()
            return awareness_reply()

        llm.generate_json.side_effect = reply

        result = orchestrator.generate([awareness_group], llm=llm, cancel_event=cancel)

        assert result.failures[0].kind == FailureKind.CANCELLED
        assert result.failures[0].retryable


class TestPacing:
    """Tests for spacing oracle calls by group_delay."""

    def timed_llm(self, first_call_seconds=0.0):
        starts = []
        llm = Mock()

        def reply(prompt, system=None, **kwargs):
            starts.append(time.monotonic())
            if len(starts) == 1:
                time.sleep(first_call_seconds)
            raise ConnectionError("oracle unreachable")

        llm.generate_json.side_effect = reply
        return llm, starts

    def test_delay_spaces_calls_from_a_busy_worker(self, awareness_group, description_group):
        config = CodeframeConfig()
        config.generation.max_workers = 1
        config.generation.group_delay = 0.2
        llm, starts = self.timed_llm(first_call_seconds=0.3)

        GenerationOrchestrator(llm, config).generate([awareness_group, description_group], with_insights=False)

        assert len(starts) == 2
        assert starts[1] - starts[0] >= 0.19

    def test_delay_spaces_parallel_workers(self, awareness_group, description_group):
        config = CodeframeConfig()
        config.generation.max_workers = 2
        config.generation.group_delay = 0.2
        llm, starts = self.timed_llm()

        GenerationOrchestrator(llm, config).generate([awareness_group, description_group], with_insights=False)

        starts.sort()
        assert starts[1] - starts[0] >= 0.19

    def test_pacer_across_threads(self):
        pacer = DispatchPacer(0.1)
        starts = []
        lock = threading.Lock()

        def call():
            pacer.wait()
            with lock:
                starts.append(time.monotonic())

        threads = [threading.Thread(target=call) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        starts.sort()
        assert starts[1] - starts[0] >= 0.09
        assert starts[2] - starts[1] >= 0.09

    def test_no_delay_does_not_wait(self):
        pacer = DispatchPacer(0.0)
        before = time.monotonic()
        pacer.wait()
        pacer.wait()
        assert time.monotonic() - before < 0.05


class TestPayload:
    """Tests for the oracle payload."""

    def test_blank_cells_are_skipped(self, orchestrator, description_group):
        payload, sampled, total = orchestrator.build_payload(description_group)

        assert payload["questionType"] == "brand-description"
        assert [c["name"] for c in payload["columns"]] == ["B1r1", "B1r2"]
        assert payload["columns"][1]["responses"] == ["Too sweet", "Good value"]
        assert total == 4
        assert sampled["B1r2"] == [("R1", "Too sweet"), ("R3", "Good value")]

    def test_sampling_keeps_minimum(self, awareness_group):
        config = CodeframeConfig()
        config.generation.sample_percentage = 30
        config.generation.min_sample_size = 5
        orchestrator = GenerationOrchestrator(config=config)

        payload, sampled, total = orchestrator.build_payload(awareness_group)

        assert total == 10
        assert len(payload["columns"][0]["responses"]) == 5


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
