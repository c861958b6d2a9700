"""
Codeframe generation across question groups.

One oracle call is made per question group. Each group is processed
independently: its reply is validated, normalized into a Codeframe and a
list of CodedResponses, and scored. Failed groups are recorded with their
reason and can be retried later without touching the groups that
succeeded.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, Union

from tqdm import tqdm

from pycodeframe.application.matcher import CodeMatcher
from pycodeframe.config import CodeframeConfig
from pycodeframe.core.codeframe import Code, Codeframe
from pycodeframe.generation.schema import (
    OracleCodedResponse,
    OracleReply,
    ValidationFailed,
    validate_reply,
)
from pycodeframe.llm.base import BaseLLM
from pycodeframe.models import CodedResponse, ColumnData, QuestionGroup
from pycodeframe.prompts import (
    INSIGHTS_PROMPT,
    INSIGHTS_SYSTEM,
    add_study_context,
    format_codeframe_summary,
    format_generation_prompt,
    system_prompt_for,
)
from pycodeframe.utils import clean_text, sample_responses, truncate_text

logger = logging.getLogger(__name__)


class GenerationStatus(str, Enum):
    """Overall status of a generation run."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Why a question group failed."""

    TRANSPORT = "transport"
    VALIDATION = "validation"
    CANCELLED = "cancelled"


@dataclass
class GroupSuccess:
    """
    A question group the oracle coded successfully.

    Attributes:
        group: The question group (referenced, not copied).
        codeframe: The group's normalized codeframe with statistics.
        coded_responses: Accepted responses, in the order the oracle
            returned them (matcher-coded rows follow when enabled).
        rejected_responses: Responses dropped because they referenced
            codes missing from the codeframe.
        sample_size: Number of responses sent to the oracle.
        total_responses: Number of non-blank responses in the group.
        brand_hierarchies: ``brandHierarchies`` from the reply, verbatim.
        attribute_themes: ``attributeThemes`` from the reply, verbatim.
        elapsed_seconds: Wall time of the group's oracle call and merge.
    """

    group: QuestionGroup
    codeframe: Codeframe
    coded_responses: list[CodedResponse] = field(default_factory=list)
    rejected_responses: list[CodedResponse] = field(default_factory=list)
    sample_size: int = 0
    total_responses: int = 0
    brand_hierarchies: Any = None
    attribute_themes: Any = None
    elapsed_seconds: float = 0.0

    succeeded = True

    def to_dict(self) -> dict:
        return {
            "group_id": self.group.group_id,
            "group_name": self.group.name,
            "question_type": self.group.question_type,
            "columns": self.group.column_names,
            "status": "succeeded",
            "n_codes": len(self.codeframe),
            "n_coded_responses": len(self.coded_responses),
            "n_rejected_responses": len(self.rejected_responses),
            "sample_size": self.sample_size,
            "total_responses": self.total_responses,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


@dataclass
class GroupFailure:
    """
    A question group that could not be coded.

    Every failure keeps the group so it can be retried on its own.
    """

    group: QuestionGroup
    kind: FailureKind
    message: str
    errors: tuple = ()

    succeeded = False

    @property
    def retryable(self) -> bool:
        return True

    def to_dict(self) -> dict:
        return {
            "group_id": self.group.group_id,
            "group_name": self.group.name,
            "question_type": self.group.question_type,
            "columns": self.group.column_names,
            "status": "failed",
            "kind": self.kind.value,
            "message": self.message,
            "errors": list(self.errors),
            "retryable": self.retryable,
        }


GroupOutcome = Union[GroupSuccess, GroupFailure]


@dataclass
class GenerationResult:
    """
    Merged result of a generation run.

    Outcomes are kept in group submission order. Codeframes stay keyed by
    question type, since codes from different question types are never
    comparable.

    Example:
        >>> result = orchestrator.generate(groups)
        >>> result.status
        <GenerationStatus.PARTIAL: 'partial'>
        >>> [f.message for f in result.failures]
        ['ConnectionError: oracle unreachable']
        >>> result = orchestrator.retry(result)
    """

    outcomes: list = field(default_factory=list)
    insights: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def successes(self) -> list[GroupSuccess]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failures(self) -> list[GroupFailure]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def status(self) -> GenerationStatus:
        if not self.outcomes or not self.successes:
            return GenerationStatus.FAILED
        if self.failures:
            return GenerationStatus.PARTIAL
        return GenerationStatus.COMPLETE

    @property
    def codeframes(self) -> dict[str, Codeframe]:
        """Codeframes of the successful groups, keyed by question type."""
        return {s.group.question_type: s.codeframe for s in self.successes}

    @property
    def coded_responses(self) -> list[CodedResponse]:
        """Accepted responses of all successful groups, in submission order."""
        responses = []
        for success in self.successes:
            responses.extend(success.coded_responses)
        return responses

    @property
    def rejected_responses(self) -> list[CodedResponse]:
        rejected = []
        for success in self.successes:
            rejected.extend(success.rejected_responses)
        return rejected

    @property
    def retryable_groups(self) -> list[QuestionGroup]:
        return [f.group for f in self.failures if f.retryable]

    def outcome_for(self, group_id: str) -> Optional[GroupOutcome]:
        for outcome in self.outcomes:
            if outcome.group.group_id == group_id:
                return outcome
        return None

    def merge(self, other: "GenerationResult") -> "GenerationResult":
        """
        Merge a later result (typically a retry) into this one.

        A failed group is replaced by the other result's outcome for the
        same group id, keeping its original position. Groups that already
        succeeded are never replaced. Groups unknown to this result are
        appended in the other result's order.

        Returns:
            A new GenerationResult; neither input is modified.
        """
        incoming = {o.group.group_id: o for o in other.outcomes}
        merged = []
        for outcome in self.outcomes:
            replacement = incoming.pop(outcome.group.group_id, None)
            if not outcome.succeeded and replacement is not None:
                merged.append(replacement)
            else:
                merged.append(outcome)
        merged.extend(o for o in other.outcomes if o.group.group_id in incoming)

        return GenerationResult(
            outcomes=merged,
            insights=self.insights or other.insights,
        )

    def summary(self) -> str:
        """One-line human summary of the run."""
        text = (
            f"{self.status.value}: {len(self.successes)}/{len(self.outcomes)} groups, "
            f"{len(self.coded_responses)} coded responses"
        )
        if self.failures:
            failed = ", ".join(f"{f.group.group_id} ({f.kind.value})" for f in self.failures)
            text += f"; failed: {failed}; retry possible"
        return text

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "groups": [o.to_dict() for o in self.outcomes],
            "codeframes": {qt: cf.to_dict() for qt, cf in self.codeframes.items()},
            "insights": self.insights,
        }

    def __repr__(self) -> str:
        return (
            f"GenerationResult(status='{self.status.value}', "
            f"succeeded={len(self.successes)}, failed={len(self.failures)})"
        )


class DispatchPacer:
    """
    Spaces oracle calls at least ``delay`` seconds apart across worker threads.

    Each caller reserves the next free slot under the lock and sleeps
    outside it, so the lock is never held across an oracle call.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._lock = threading.Lock()
        self._next_at = 0.0

    def wait(self) -> None:
        if self.delay <= 0:
            return
        with self._lock:
            now = time.monotonic()
            start_at = max(now, self._next_at)
            self._next_at = start_at + self.delay
        if start_at > now:
            time.sleep(start_at - now)


class GenerationOrchestrator:
    """
    Drives the classification oracle over question groups.

    Each group gets its own oracle call with its own prompt. Groups share
    no mutable state; their outcomes are collected per group and merged
    into one GenerationResult only after every group has resolved.

    Example:
        >>> orchestrator = GenerationOrchestrator(llm, CodeframeConfig())
        >>> result = orchestrator.generate([awareness_group, description_group])
        >>> result.codeframes["brand-description"]
        Codeframe(question_type='brand-description', n_codes=12, total_responses=250)
    """

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        config: Optional[CodeframeConfig] = None,
        study_context: Optional[str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            llm: Default oracle backend (can be overridden per call).
            config: Engine configuration. Uses defaults if None.
            study_context: Optional context added to every system prompt.
                Defaults to ``config.study_context``.
        """
        self.llm = llm
        self.config = config or CodeframeConfig()
        self.study_context = study_context or self.config.study_context

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        groups: Iterable[QuestionGroup],
        llm: Optional[BaseLLM] = None,
        cancel_event: Optional[threading.Event] = None,
        verbose: bool = False,
        with_insights: bool = True,
    ) -> GenerationResult:
        """
        Generate one codeframe per question group.

        Args:
            groups: Question groups, each with a distinct question type.
            llm: Oracle backend for this run (defaults to the instance's).
            cancel_event: When set, groups not yet sent to the oracle and
                calls still in flight are recorded as cancelled failures.
            verbose: If True, show a progress bar over groups.
            with_insights: Whether to request cross-group insights.

        Returns:
            GenerationResult with per-group outcomes in submission order.

        Raises:
            ValueError: If no groups are given, no oracle is available, or
                two groups share a question type.
        """
        groups = list(groups)
        llm = self._resolve_llm(llm)
        self._check_groups(groups)

        gen_config = self.config.generation
        max_workers = max(1, min(gen_config.max_workers, len(groups)))
        logger.info(f"Generating codeframes for {len(groups)} question groups (workers={max_workers})")

        outcomes: list[Optional[GroupOutcome]] = [None] * len(groups)

        pacer = DispatchPacer(gen_config.group_delay)

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_index = {
                executor.submit(self._run_group, group, llm, cancel_event, pacer): index
                for index, group in enumerate(groups)
            }

            completed = as_completed(future_to_index)
            if verbose:
                completed = tqdm(completed, total=len(groups), desc="Generating codeframes", unit="group")

            for future in completed:
                index = future_to_index[future]
                outcomes[index] = future.result()

        result = GenerationResult(outcomes=outcomes)
        if with_insights:
            result.insights = self._generate_insights(result, llm)

        log = logger.info if result.status == GenerationStatus.COMPLETE else logger.warning
        log(f"Generation {result.summary()}")
        return result

    def retry(
        self,
        previous: GenerationResult,
        llm: Optional[BaseLLM] = None,
        cancel_event: Optional[threading.Event] = None,
        verbose: bool = False,
    ) -> GenerationResult:
        """
        Re-run only the failed groups of a previous result and merge.

        Groups that already succeeded are not recomputed, so their
        codeframes and statistics are unchanged.

        Returns:
            The merged result (``previous`` itself when nothing failed).
        """
        failed_groups = previous.retryable_groups
        if not failed_groups:
            logger.info("Nothing to retry: every group succeeded")
            return previous

        logger.info(f"Retrying {len(failed_groups)} failed group(s): {[g.group_id for g in failed_groups]}")
        retry_result = self.retry_groups(failed_groups, llm=llm, cancel_event=cancel_event, verbose=verbose)
        merged = previous.merge(retry_result)

        if merged.insights is None:
            merged.insights = self._generate_insights(merged, self._resolve_llm(llm))
        return merged

    def retry_groups(
        self,
        failed_groups: Iterable[QuestionGroup],
        llm: Optional[BaseLLM] = None,
        cancel_event: Optional[threading.Event] = None,
        verbose: bool = False,
    ) -> GenerationResult:
        """
        Stand-alone retry entrypoint.

        Runs the given groups exactly like a first pass (without insights);
        the result can be merged into a prior partial result with
        :meth:`GenerationResult.merge`.
        """
        return self.generate(
            failed_groups,
            llm=llm,
            cancel_event=cancel_event,
            verbose=verbose,
            with_insights=False,
        )

    def build_payload(self, group: QuestionGroup) -> tuple[dict, dict, int]:
        """
        Build the oracle payload for a group.

        Returns:
            Tuple of (payload, sampled rows per column name as lists of
            ``(row_id, text)``, total non-blank responses in the group).
        """
        gen_config = self.config.generation
        columns = []
        sampled = {}
        total = 0

        for column in group.columns:
            rows = list(column.responses())
            total += len(rows)
            rows = sample_responses(
                rows,
                percentage=gen_config.sample_percentage,
                min_size=gen_config.min_sample_size,
                seed=gen_config.random_seed,
            )
            sampled[column.name] = rows
            columns.append({
                "name": column.name,
                "index": column.index,
                "responses": [text for _, text in rows],
            })

        payload = {"questionType": group.question_type, "columns": columns}
        return payload, sampled, total

    # ------------------------------------------------------------------
    # Per-group processing
    # ------------------------------------------------------------------

    def _run_group(
        self,
        group: QuestionGroup,
        llm: BaseLLM,
        cancel_event: Optional[threading.Event],
        pacer: Optional[DispatchPacer] = None,
    ) -> GroupOutcome:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Group '{group.group_id}' cancelled before dispatch")
            return GroupFailure(group, FailureKind.CANCELLED, "Run cancelled before the group was sent")

        start = time.time()
        payload, sampled, total = self.build_payload(group)
        sample_size = sum(len(rows) for rows in sampled.values())
        if sample_size == 0:
            return GroupFailure(group, FailureKind.VALIDATION, "No responses found in the group's columns")

        system = add_study_context(system_prompt_for(group.question_type), self.study_context)
        prompt = format_generation_prompt(payload)

        if pacer is not None:
            pacer.wait()
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Group '{group.group_id}' cancelled before dispatch")
                return GroupFailure(group, FailureKind.CANCELLED, "Run cancelled before the group was sent")

        try:
            raw = llm.generate_json(prompt, system=system)
        except Exception as e:
            logger.warning(f"Oracle call failed for group '{group.group_id}': {type(e).__name__}: {e}")
            return GroupFailure(group, FailureKind.TRANSPORT, f"{type(e).__name__}: {e}")

        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Group '{group.group_id}' abandoned while in flight")
            return GroupFailure(group, FailureKind.CANCELLED, "Run cancelled while the oracle call was in flight")

        reply = validate_reply(raw)
        if isinstance(reply, ValidationFailed):
            logger.warning(f"Invalid oracle reply for group '{group.group_id}': {reply.message}")
            return GroupFailure(group, FailureKind.VALIDATION, reply.message, reply.errors)

        success = self._build_success(group, reply, sampled, total)
        success.sample_size = sample_size
        success.elapsed_seconds = time.time() - start
        logger.info(
            f"Group '{group.group_id}' ({group.question_type}): {len(success.codeframe)} codes, "
            f"{len(success.coded_responses)} coded responses"
        )
        return success

    def _build_success(
        self,
        group: QuestionGroup,
        reply: OracleReply,
        sampled: dict,
        total: int,
    ) -> GroupSuccess:
        gen_config = self.config.generation

        codeframe = Codeframe(question_type=group.question_type)
        for oracle_code in reply.codeframe:
            code = Code.from_dict(oracle_code.to_code_dict())
            if code.id in codeframe:
                logger.warning(f"Group '{group.group_id}': duplicate code id '{code.id}' ignored")
                continue
            codeframe.add(code)
        codeframe.ensure_numeric_ids(start=gen_config.numeric_id_start)

        responses = self._map_responses(group, reply.codedResponses, sampled)
        codeframe.ensure_catch_all(label=gen_config.catch_all_label, responses=responses)

        accepted, rejected = [], []
        for response in responses:
            unknown = [c for c in response.codes_assigned if c not in codeframe]
            if unknown:
                logger.error(
                    f"Group '{group.group_id}': dropping response {truncate_text(response.text, 80)!r} "
                    f"with unknown code id(s) {unknown}"
                )
                rejected.append(response)
            else:
                accepted.append(response)

        if gen_config.apply_to_unseen:
            accepted.extend(self._code_unseen(group, codeframe, accepted))

        codeframe.recompute_statistics(accepted)
        codeframe.metadata.update({
            "group_id": group.group_id,
            "columns": group.column_names,
            "sample_size": sum(len(rows) for rows in sampled.values()),
            "total_responses": total,
        })

        return GroupSuccess(
            group=group,
            codeframe=codeframe,
            coded_responses=accepted,
            rejected_responses=rejected,
            total_responses=total,
            brand_hierarchies=reply.brandHierarchies,
            attribute_themes=reply.attributeThemes,
        )

    def _map_responses(
        self,
        group: QuestionGroup,
        oracle_responses: list[OracleCodedResponse],
        sampled: dict,
    ) -> list[CodedResponse]:
        """Turn oracle responses into CodedResponses with column and row ids."""
        by_name = {c.name: c for c in group.columns}
        by_index = {c.index: c for c in group.columns}

        # FIFO queues so repeated identical answers map to successive rows
        exact: dict[str, dict[str, deque]] = {}
        loose: dict[str, dict[str, deque]] = {}
        for name, rows in sampled.items():
            exact[name] = {}
            loose[name] = {}
            for row_id, text in rows:
                exact[name].setdefault(text, deque()).append(row_id)
                loose[name].setdefault(clean_text(text).lower(), deque()).append(row_id)

        responses = []
        for item in oracle_responses:
            column = self._resolve_column(item, by_name, by_index, group)
            row_id = None
            if column is not None:
                row_id = self._resolve_row(item, column, exact[column.name], loose[column.name])
                if row_id is None:
                    logger.debug(f"Could not map response {item.responseText!r} to a row of '{column.name}'")
            else:
                logger.warning(
                    f"Group '{group.group_id}': response references unknown column '{item.columnName}'"
                )

            responses.append(CodedResponse(
                text=item.responseText,
                codes_assigned=list(item.codesAssigned),
                column_id=column.name if column is not None else item.columnName,
                row_id=row_id,
                column_index=column.index if column is not None else item.columnIndex,
                question_type=group.question_type,
                source="oracle",
            ))
        return responses

    @staticmethod
    def _resolve_column(
        item: OracleCodedResponse,
        by_name: dict,
        by_index: dict,
        group: QuestionGroup,
    ) -> Optional[ColumnData]:
        if item.columnName in by_name:
            return by_name[item.columnName]
        if item.columnIndex is not None and item.columnIndex in by_index:
            return by_index[item.columnIndex]
        if len(group.columns) == 1:
            return group.columns[0]
        return None

    @staticmethod
    def _resolve_row(
        item: OracleCodedResponse,
        column: ColumnData,
        exact: dict,
        loose: dict,
    ) -> Optional[str]:
        if item.rowId is not None:
            valid_ids = column.row_ids or tuple(column.row_id_at(i) for i in range(len(column)))
            if item.rowId in valid_ids:
                return item.rowId

        text = item.responseText.strip()
        queue = exact.get(text)
        if not queue:
            queue = loose.get(clean_text(text).lower())
        if queue:
            return queue.popleft()
        return None

    def _code_unseen(
        self,
        group: QuestionGroup,
        codeframe: Codeframe,
        accepted: list[CodedResponse],
    ) -> list[CodedResponse]:
        """Code rows the oracle did not return using the matching engine."""
        matcher = CodeMatcher(codeframe, self.config.matching)
        coded = []
        for column in group.columns:
            seen = {
                r.row_id for r in accepted
                if r.column_id == column.name and r.row_id is not None
            }
            coded.extend(matcher.apply_to_column(column, question_type=group.question_type, skip_rows=seen))
        if coded:
            logger.info(f"Group '{group.group_id}': matcher coded {len(coded)} unseen responses")
        return coded

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _generate_insights(self, result: GenerationResult, llm: BaseLLM) -> Optional[str]:
        successes = result.successes
        if not self.config.generation.generate_insights or len(successes) < 2:
            return None

        summaries = "\n\n".join(
            format_codeframe_summary(s.group.question_type, s.codeframe) for s in successes
        )
        try:
            insights = llm.generate(
                INSIGHTS_PROMPT.format(summaries=summaries),
                system=add_study_context(INSIGHTS_SYSTEM, self.study_context),
            )
        except Exception as e:
            logger.warning(f"Insight generation failed: {type(e).__name__}: {e}")
            return None
        return insights.strip() if isinstance(insights, str) else None

    def _resolve_llm(self, llm: Optional[BaseLLM]) -> BaseLLM:
        llm = llm or self.llm
        if llm is None:
            raise ValueError("No oracle backend given; pass llm= or set it on the orchestrator")
        return llm

    @staticmethod
    def _check_groups(groups: list[QuestionGroup]) -> None:
        if not groups:
            raise ValueError("At least one question group is required")

        seen_types = {}
        seen_ids = set()
        for group in groups:
            if group.question_type in seen_types:
                raise ValueError(
                    f"Question type '{group.question_type}' is used by both "
                    f"'{seen_types[group.question_type]}' and '{group.group_id}'"
                )
            if group.group_id in seen_ids:
                raise ValueError(f"Duplicate question group id '{group.group_id}'")
            seen_types[group.question_type] = group.group_id
            seen_ids.add(group.group_id)

    def __repr__(self) -> str:
        return (
            f"GenerationOrchestrator(llm={self.llm!r}, "
            f"max_workers={self.config.generation.max_workers})"
        )
