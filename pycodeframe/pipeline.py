"""High-level pipeline wiring the codeframe engine from one configuration."""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from pycodeframe.application.matcher import CodeMatcher
from pycodeframe.config import CodeframeConfig
from pycodeframe.core.codeframe import Codeframe
from pycodeframe.generation.orchestrator import GenerationOrchestrator, GenerationResult
from pycodeframe.io.loaders import groups_from_dataframe, load_table
from pycodeframe.io.wide_table import WideTable, render, render_result
from pycodeframe.llm.base import BaseLLM
from pycodeframe.models import CodedResponse, QuestionGroup
from pycodeframe.tracking.store import InMemoryVersionStore, StudyVersion, VersionStore
from pycodeframe.tracking.versions import VersionTracker

logger = logging.getLogger(__name__)

DataSource = Union[str, Path, pd.DataFrame]


class CodeframePipeline:
    """
    High-level orchestration of the codeframe workflow.

    The pipeline covers the full wave process:
    1. Load the survey table and group its open-ended columns by question type
    2. Generate one codeframe per question type with the oracle
    3. Retry failed groups without touching the successful ones
    4. Re-apply frozen codeframes to new data with the matching engine
    5. Render the wide, binary-encoded table
    6. Save each wave's codeframe as a tracking-study version

    Example:
        >>> pipeline = CodeframePipeline()
        >>> result = pipeline.generate(
        ...     "wave3.csv",
        ...     column_types={"Q1": "unaided-awareness", "B1r1": "brand-description"},
        ...     id_column="RespID",
        ... )
        >>> if result.failures:
        ...     result = pipeline.retry(result)
        >>> pipeline.render(result).to_csv("wave3_coded.csv")
    """

    def __init__(
        self,
        config: Optional[CodeframeConfig] = None,
        llm: Optional[BaseLLM] = None,
        llm_model: Optional[str] = None,
        store: Optional[VersionStore] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Full configuration object. If not provided, uses defaults.
            llm: Ready-made oracle backend. Built from ``config.llm`` on
                first use when omitted.
            llm_model: Override LLM model name.
            store: Version store for tracking. Defaults to in-memory.
        """
        self.config = config or CodeframeConfig()

        if llm_model:
            self.config.llm.model = llm_model

        self._llm = llm
        self._orchestrator = None
        self._tracker = None
        self._store = store

    @property
    def llm(self) -> BaseLLM:
        """Get or create the oracle backend based on config."""
        if self._llm is None:
            self._llm = self.config.llm.create_backend()
            if not self._llm.is_available():
                backend = self.config.llm.backend
                if backend == "ollama":
                    raise RuntimeError(
                        f"LLM not available at {self.config.llm.base_url}. "
                        "Make sure Ollama is running: ollama serve"
                    )
                elif backend == "cerebras":
                    raise RuntimeError(
                        "Cerebras API not available. "
                        "Check your CEREBRAS_API_KEY environment variable."
                    )
                else:
                    raise RuntimeError(f"LLM backend '{backend}' not available.")
        return self._llm

    @property
    def orchestrator(self) -> GenerationOrchestrator:
        """Get or create the generation orchestrator."""
        if self._orchestrator is None:
            self._orchestrator = GenerationOrchestrator(config=self.config)
        return self._orchestrator

    @property
    def tracker(self) -> VersionTracker:
        """Get or create the version tracker."""
        if self._tracker is None:
            self._tracker = VersionTracker(
                store=self._store or InMemoryVersionStore(),
                config=self.config.tracking,
            )
        return self._tracker

    def build_groups(
        self,
        data: DataSource,
        column_types: dict[str, str],
        id_column: Optional[str] = None,
    ) -> list[QuestionGroup]:
        """
        Load the survey table and build one question group per type.

        Args:
            data: Path to a CSV file or a DataFrame.
            column_types: Mapping of open-ended column to question type.
            id_column: Optional respondent id column.
        """
        df = self._load_data(data)
        return groups_from_dataframe(df, column_types, id_column=id_column)

    def generate(
        self,
        data: Union[DataSource, list[QuestionGroup]],
        column_types: Optional[dict[str, str]] = None,
        id_column: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        verbose: Optional[bool] = None,
    ) -> GenerationResult:
        """
        Generate one codeframe per question type.

        This is the main entry point of a new wave.

        Args:
            data: Path, DataFrame, or ready-made question groups.
            column_types: Column to question type mapping (required unless
                groups are passed).
            id_column: Optional respondent id column.
            cancel_event: Set it to cancel groups still pending or in flight.
            verbose: Show progress bars (defaults to ``config.verbose``).

        Returns:
            GenerationResult; check ``status`` for partial runs.
        """
        groups = self._groups(data, column_types, id_column)
        verbose = self.config.verbose if verbose is None else verbose

        result = self.orchestrator.generate(
            groups,
            llm=self.llm,
            cancel_event=cancel_event,
            verbose=verbose,
        )
        return result

    def retry(
        self,
        result: GenerationResult,
        cancel_event: Optional[threading.Event] = None,
        verbose: Optional[bool] = None,
    ) -> GenerationResult:
        """Re-run only the failed groups of a result and merge them back."""
        verbose = self.config.verbose if verbose is None else verbose
        return self.orchestrator.retry(result, llm=self.llm, cancel_event=cancel_event, verbose=verbose)

    def apply_codeframe(
        self,
        codeframe: Union[Codeframe, dict[str, Codeframe]],
        data: Union[DataSource, list[QuestionGroup]],
        column_types: Optional[dict[str, str]] = None,
        id_column: Optional[str] = None,
        verbose: Optional[bool] = None,
    ) -> list[CodedResponse]:
        """
        Re-apply frozen codeframes to new data with the matching engine.

        No oracle call is made and the codeframes are not modified.

        Args:
            codeframe: One codeframe for every group, or codeframes keyed
                by question type.
            data: Path, DataFrame, or ready-made question groups.
            column_types: Column to question type mapping (required unless
                groups are passed).
            id_column: Optional respondent id column.
            verbose: Show progress bars (defaults to ``config.verbose``).

        Returns:
            Coded responses with ``source='matcher'``.

        Raises:
            KeyError: If a group's question type has no codeframe.
        """
        groups = self._groups(data, column_types, id_column)
        verbose = self.config.verbose if verbose is None else verbose

        responses = []
        for group in groups:
            frame = self._frame_for(codeframe, group.question_type)
            matcher = CodeMatcher(frame, config=self.config.matching)
            responses.extend(matcher.apply_to_groups([group], verbose=verbose))

        logger.info(f"Applied frozen codeframes to {len(responses)} responses in {len(groups)} groups")
        return responses

    def render(
        self,
        result_or_responses: Union[GenerationResult, list[CodedResponse]],
        codeframes: Optional[Union[Codeframe, dict[str, Codeframe]]] = None,
    ) -> WideTable:
        """
        Render the wide, binary-encoded table.

        Args:
            result_or_responses: A GenerationResult, or coded responses
                (e.g. from :meth:`apply_codeframe`).
            codeframes: Required with plain responses: one codeframe, or
                codeframes keyed by question type.
        """
        if isinstance(result_or_responses, GenerationResult):
            return render_result(result_or_responses, config=self.config.export)

        if codeframes is None:
            raise ValueError("codeframes are required to render plain coded responses")

        mapping = {}
        responses_by_question: dict[str, list[CodedResponse]] = {}
        for response in result_or_responses:
            if response.column_id not in mapping:
                mapping[response.column_id] = self._frame_for(codeframes, response.question_type)
                responses_by_question[response.column_id] = []
            responses_by_question[response.column_id].append(response)

        return render(mapping, responses_by_question, config=self.config.export)

    def save_version(
        self,
        codeframe: Codeframe,
        wave: str,
        description: Optional[str] = None,
        compare_to: Optional[int] = None,
    ) -> StudyVersion:
        """Snapshot a wave's codeframe in the tracking study."""
        return self.tracker.save_version(
            codeframe,
            wave=wave,
            description=description,
            compare_to=compare_to,
        )

    def _groups(
        self,
        data: Union[DataSource, list[QuestionGroup]],
        column_types: Optional[dict[str, str]],
        id_column: Optional[str],
    ) -> list[QuestionGroup]:
        if isinstance(data, list):
            return data
        if not column_types:
            raise ValueError("column_types is required when passing a table")
        return self.build_groups(data, column_types, id_column=id_column)

    @staticmethod
    def _frame_for(
        codeframes: Union[Codeframe, dict[str, Codeframe]],
        question_type: Optional[str],
    ) -> Codeframe:
        if isinstance(codeframes, Codeframe):
            return codeframes
        if question_type in codeframes:
            return codeframes[question_type]
        if len(codeframes) == 1:
            return next(iter(codeframes.values()))
        raise KeyError(f"No codeframe for question type '{question_type}'")

    def _load_data(self, data: DataSource) -> pd.DataFrame:
        """Load data from file or return DataFrame."""
        if isinstance(data, pd.DataFrame):
            return data
        return load_table(data)

    def __repr__(self) -> str:
        return f"CodeframePipeline(backend='{self.config.llm.backend}', model='{self.config.llm.model}')"
