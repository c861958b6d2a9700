"""
Oracle reply schema.

Pydantic models for the JSON the classification oracle returns for one
question group. A reply that does not match is reported as a
ValidationFailed value rather than an exception, so the orchestrator can
treat it as a plain failed-group branch.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class OracleCode(BaseModel):
    """One code proposed by the oracle."""

    model_config = ConfigDict(extra="ignore")

    code: str = Field(description="Stable code id, e.g. 'C01'")
    label: str = Field(description="Short human name")
    definition: str = Field(default="", description="What the code covers")
    examples: List[str] = Field(default_factory=list, description="Example responses")
    numeric: Optional[int] = Field(default=None, description="Numeric id, if the oracle assigned one")
    parentCode: Optional[str] = Field(default=None, description="Id of the parent code")
    isParent: bool = Field(default=False, description="Whether the code aggregates others")
    level: Optional[str] = Field(default=None, description="Explicit hierarchy level")

    @field_validator("code", "parentCode", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("examples", mode="before")
    @classmethod
    def _coerce_examples(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(v) for v in value]

    @field_validator("numeric", mode="before")
    @classmethod
    def _coerce_numeric(cls, value):
        if value in (None, ""):
            return None
        return value

    @field_validator("definition", mode="before")
    @classmethod
    def _coerce_definition(cls, value):
        return "" if value is None else value

    def to_code_dict(self) -> dict:
        """Return the dictionary form accepted by ``Code.from_dict``."""
        return {
            "code": self.code,
            "label": self.label,
            "definition": self.definition,
            "examples": list(self.examples),
            "numeric": self.numeric,
            "parentCode": self.parentCode,
            "isParent": self.isParent,
            "level": self.level,
        }


class OracleCodedResponse(BaseModel):
    """One response coded by the oracle."""

    model_config = ConfigDict(extra="ignore")

    responseText: str = Field(description="The verbatim response")
    columnName: str = Field(description="Column the response came from")
    columnIndex: Optional[int] = Field(default=None, description="Column position")
    codesAssigned: List[str] = Field(default_factory=list, description="Assigned code ids")
    rowId: Optional[str] = Field(default=None, description="Respondent id, when echoed back")

    @field_validator("codesAssigned", mode="before")
    @classmethod
    def _coerce_codes(cls, value):
        if value is None:
            return []
        if isinstance(value, (str, int)):
            return [str(value)]
        return [str(v) for v in value]

    @field_validator("responseText", "columnName", "rowId", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)


class OracleReply(BaseModel):
    """The full oracle reply for one question group."""

    model_config = ConfigDict(extra="ignore")

    codeframe: List[OracleCode] = Field(description="Proposed codes")
    codedResponses: List[OracleCodedResponse] = Field(description="Responses with codes")
    brandHierarchies: Optional[Any] = Field(default=None, description="Kept verbatim")
    attributeThemes: Optional[Any] = Field(default=None, description="Kept verbatim")


@dataclass(frozen=True)
class ValidationFailed:
    """The oracle replied, but not with the expected shape."""

    message: str
    errors: tuple = ()


def validate_reply(raw) -> Union[OracleReply, ValidationFailed]:
    """
    Check an oracle reply against the schema.

    Args:
        raw: Parsed JSON returned by the oracle.

    Returns:
        OracleReply when the shape is valid, otherwise ValidationFailed
        with a readable message and the individual errors.
    """
    if not isinstance(raw, dict):
        return ValidationFailed(
            message=f"Oracle reply is not a JSON object (got {type(raw).__name__})"
        )

    missing = [key for key in ("codeframe", "codedResponses") if key not in raw]
    if missing:
        return ValidationFailed(
            message=f"Oracle reply is missing required field(s): {', '.join(missing)}"
        )

    try:
        return OracleReply.model_validate(raw)
    except ValidationError as e:
        errors = tuple(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        return ValidationFailed(
            message=f"Oracle reply failed validation ({len(errors)} error(s)): {errors[0]}",
            errors=errors,
        )
