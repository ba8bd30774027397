"""
sqlpath/schemas/challenge.py
Challenge payload as a tagged union over sql / mcq / debug / completion

Generated (or pasted) challenge documents are validated here before they are
stored on a module, cached, graded or shown to a learner. The wire format is
the camelCase JSON produced by the content service:

{
    "type": "sql" | "mcq" | "debug" | "completion",   (defaults to "sql")
    "title": "...", "topic": "...", "scenario": "...", "task": "...",
    "schema": [{"tableName": "...", "columns": [...], "data": [[...]]}],
    "requiredConcepts": [...],
    "options": [...], "correctAnswer": "...",          (mcq only)
    "initialCode": "..."                                (debug / completion only)
}
"""
import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from sqlpath.exceptions import ChallengePayloadError


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class SchemaTable(_CamelModel):
    """Sample table shown to the learner and used for grading."""
    table_name: str = Field(..., min_length=1)
    columns: List[str] = Field(..., min_length=1)
    data: List[List[str]] = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def stringify_cells(cls, v):
        # The generator sometimes emits numbers/nulls inside rows
        if not isinstance(v, list):
            return v
        return [
            ["" if cell is None else str(cell) for cell in row] if isinstance(row, list) else row
            for row in v
        ]

    @model_validator(mode="after")
    def rows_match_columns(self):
        width = len(self.columns)
        for index, row in enumerate(self.data):
            if len(row) != width:
                raise ValueError(
                    f"row {index} of table '{self.table_name}' has {len(row)} cells, expected {width}"
                )
        return self


class _ChallengeBase(_CamelModel):
    id: Optional[Union[int, str]] = None
    title: str = Field(..., min_length=1)
    topic: str = ""
    scenario: str = ""
    task: str = Field(..., min_length=1)
    difficulty: Optional[str] = None
    required_concepts: List[str] = Field(default_factory=list)
    tables: List[SchemaTable] = Field(default_factory=list, alias="schema")


class SqlChallenge(_ChallengeBase):
    type: Literal["sql"] = "sql"


class DebugChallenge(_ChallengeBase):
    """initialCode holds the broken query the learner has to fix."""
    type: Literal["debug"] = "debug"
    initial_code: str = Field(..., min_length=1)


class CompletionChallenge(_ChallengeBase):
    """initialCode holds the partial query with blanks to fill."""
    type: Literal["completion"] = "completion"
    initial_code: str = Field(..., min_length=1)


class McqChallenge(_ChallengeBase):
    type: Literal["mcq"] = "mcq"
    options: List[str] = Field(..., min_length=2)
    correct_answer: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def answer_is_an_option(self):
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must be one of the options")
        return self


Challenge = Annotated[
    Union[SqlChallenge, McqChallenge, DebugChallenge, CompletionChallenge],
    Field(discriminator="type"),
]

_challenge_adapter = TypeAdapter(Challenge)


def parse_challenge(data: Any) -> Challenge:
    """
    Validate a decoded challenge document.

    Raises:
        ChallengePayloadError: not an object, unknown type, or missing /
        malformed fields for its type
    """
    if not isinstance(data, dict):
        raise ChallengePayloadError("Challenge payload must be a JSON object")

    payload = dict(data)
    if not payload.get("type"):
        payload["type"] = "sql"

    try:
        return _challenge_adapter.validate_python(payload)
    except ValidationError as e:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
            for err in e.errors()
        ]
        raise ChallengePayloadError("Invalid challenge payload", errors=errors) from e


def parse_challenge_json(text: str) -> Challenge:
    """Validate raw JSON text, e.g. pasted into the admin editor."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ChallengePayloadError(f"Challenge is not valid JSON: {e}") from e
    return parse_challenge(data)


def challenge_to_dict(challenge: Challenge) -> Dict[str, Any]:
    """Serialise back to the camelCase wire/storage format."""
    return challenge.model_dump(by_alias=True, exclude_none=True)


# ================= GRADING =================

class ValidationVerdict(_CamelModel):
    """Graded answer as returned to the learner."""
    is_correct: bool = False
    feedback: str = ""
    best_practice: Optional[str] = None
    points: int = 0
    data: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("points", mode="before")
    @classmethod
    def clamp_points(cls, v):
        try:
            value = int(v)
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, value))

    @field_validator("data", mode="before")
    @classmethod
    def only_rows(cls, v):
        if not isinstance(v, list):
            return []
        return [row for row in v if isinstance(row, dict)]
