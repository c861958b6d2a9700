"""Configuration dataclasses for pycodeframe."""

from dataclasses import dataclass, field
from typing import Optional, Literal


DEFAULT_STOP_WORDS = ("this", "that", "with", "they", "them", "when", "where")


@dataclass
class LLMConfig:
    """Configuration for the classification oracle backend."""

    backend: Literal["ollama", "cerebras"] = "ollama"
    """Which LLM backend to use: 'ollama' for local inference, 'cerebras' for cloud API."""

    model: str = "qwen3:30b-a3b-instruct-2507-q4_K_M"
    """Model name. For Ollama, use local model names. For Cerebras, use 'llama-3.3-70b', etc."""

    base_url: str = "http://localhost:11434"
    """Base URL for Ollama API (only used when backend='ollama')."""

    api_key: Optional[str] = None
    """API key for cloud backends like Cerebras. If None, reads from environment variable."""

    temperature: float = 0.3
    """Sampling temperature. Codeframe generation works best with low values."""

    max_tokens: int = 4096
    """Maximum tokens to generate. A full codeframe plus coded responses is long."""

    timeout: int = 180
    """Request timeout in seconds."""

    debug: bool = False
    """If True, log all oracle prompts and responses."""

    rate_limit_delay: float = 0.1
    """Seconds to wait between API calls for rate-limited backends like Cerebras free tier (30 req/min)."""

    def create_backend(self):
        """
        Create and return the appropriate LLM backend based on configuration.

        Returns:
            BaseLLM: The configured LLM backend instance.

        Raises:
            ValueError: If an unknown backend is specified.
        """
        if self.backend == "ollama":
            from pycodeframe.llm.ollama import OllamaBackend

            return OllamaBackend.from_config(self)
        elif self.backend == "cerebras":
            from pycodeframe.llm.cerebras import CerebrasBackend

            return CerebrasBackend.from_config(self)
        else:
            raise ValueError(f"Unknown LLM backend: {self.backend}")


@dataclass
class GenerationConfig:
    """Configuration for per-group codeframe generation."""

    max_workers: int = 1
    """Maximum number of question groups sent to the oracle concurrently."""

    group_delay: float = 0.0
    """Seconds to wait between dispatching consecutive groups (external rate limits)."""

    sample_percentage: float = 100.0
    """Percentage of each column's non-blank responses included in the oracle payload."""

    min_sample_size: int = 20
    """Lower bound on the number of sampled responses per column (when available)."""

    random_seed: Optional[int] = 42
    """Seed for response sampling."""

    numeric_id_start: int = 1001
    """First numeric id synthesized for codes the oracle returned without one."""

    catch_all_label: str = "Other"
    """Label of the synthesized catch-all code."""

    generate_insights: bool = True
    """Whether to request a cross-group insight summary when more than one group succeeds."""

    apply_to_unseen: bool = False
    """Code rows the oracle did not return with the matching engine before computing statistics."""


@dataclass
class MatchingConfig:
    """Configuration for the deterministic matching engine."""

    threshold: float = 0.2
    """A code applies when its summed confidence exceeds this value."""

    keyword_weight: float = 0.3
    """Confidence added for every keyword found in the response."""

    example_weight: float = 0.5
    """Weight of the word overlap with each example phrase."""

    min_word_length: int = 4
    """Shortest token kept as a keyword or counted as an example word match."""

    stop_words: tuple[str, ...] = DEFAULT_STOP_WORDS
    """Tokens never used as keywords."""

    include_label: bool = True
    """Whether label tokens join the keyword set alongside definition and examples."""


@dataclass
class ExportConfig:
    """Configuration for the wide-table export."""

    max_code_slots: int = 10
    """Number of fixed slot columns per question."""

    delimiter: str = ","
    """Field delimiter for the delimited-text export."""

    include_respondent_id: bool = True
    """Whether the first column carries the respondent identity."""

    respondent_id_column: str = "Respondent_ID"
    """Header of the respondent identity column."""

    include_unused_codes: bool = False
    """Emit a binary column for every code in the codeframe, not only reachable ones."""

    blank_unanswered: bool = True
    """Leave binary columns blank (instead of 0) for questions a respondent did not answer."""


@dataclass
class TrackingConfig:
    """Configuration for longitudinal version tracking."""

    study_id: str = "default"
    """Identity of the tracking study; versions are numbered per study."""

    study_name: str = ""
    """Human-readable study name used in reports."""

    comparison_mode: Literal["wave-over-wave", "vs-baseline", "all-waves"] = "wave-over-wave"
    """Which prior version a newly saved version is compared against."""

    baseline_version: Optional[int] = None
    """Version number pinned as baseline for 'vs-baseline'. Ignored when it is not earlier
    than the compared version; the first version is used then."""

    significance_threshold: float = 5.0
    """Percentage-point change considered significant."""

    auto_detect_changes: bool = True
    """Whether save_version computes a changes summary immediately."""


@dataclass
class CodeframeConfig:
    """
    Main configuration for the codeframe engine.

    Aggregates all sub-configurations and provides sensible defaults for
    generation, matching, export and tracking.

    Example:
        >>> config = CodeframeConfig()
        >>> config.llm.model = "llama3:8b"
        >>> config.generation.max_workers = 3
        >>> config.tracking.significance_threshold = 8.0
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    """Configuration for the oracle backend."""

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    """Configuration for codeframe generation."""

    matching: MatchingConfig = field(default_factory=MatchingConfig)
    """Configuration for the matching engine."""

    export: ExportConfig = field(default_factory=ExportConfig)
    """Configuration for the wide-table export."""

    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    """Configuration for version tracking."""

    verbose: bool = True
    """Whether to print progress information."""

    study_context: Optional[str] = None
    """Optional context about the study to include in oracle prompts.

    Example: "Wave 3 of a soft drink brand tracker, UK adults 18-65."
    """

    @classmethod
    def from_dict(cls, config_dict: dict) -> "CodeframeConfig":
        """Create a CodeframeConfig from a dictionary."""
        config = cls()

        sub_configs = {
            "llm": LLMConfig,
            "generation": GenerationConfig,
            "matching": MatchingConfig,
            "export": ExportConfig,
            "tracking": TrackingConfig,
        }

        for key, value in config_dict.items():
            if key in sub_configs and isinstance(value, dict):
                if key == "matching" and "stop_words" in value:
                    value = {**value, "stop_words": tuple(value["stop_words"])}
                setattr(config, key, sub_configs[key](**value))
            elif hasattr(config, key):
                setattr(config, key, value)

        return config

    def to_dict(self) -> dict:
        """Convert the configuration to a dictionary."""
        from dataclasses import asdict

        return asdict(self)
