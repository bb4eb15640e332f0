"""Static stage-input mapping table.

Each stage reads only the fields it declares, under its own names. The table
says where every one of those fields comes from:

  transcript : user_id ← user_id, prompt ← prompt, run_id ← run_id
  completion : user_id ← user_id, prompt ← prompt
  speech     : text ← completion, user_id ← user_id, run_id ← run_id

``validate_mapping`` checks the table against the stages' pydantic models when
the orchestrator is built, so an unsatisfiable input is a ``MappingError`` at
startup and never a mid-run surprise.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel

from red_ai.errors import MappingError
from red_ai.types import PipelineInput, StageName

RUN_ID = "run_id"

PIPELINE_ORDER: tuple[StageName, ...] = (
    StageName.TRANSCRIPT,
    StageName.COMPLETION,
    StageName.SPEECH,
)

# Fields available before the first stage runs.
SEED_FIELDS: frozenset[str] = frozenset(PipelineInput.model_fields) | {RUN_ID}


@dataclass(frozen=True)
class FieldBinding:
    source: str
    target: str


@dataclass(frozen=True)
class StageMapping:
    stage: StageName
    bindings: tuple[FieldBinding, ...]

    @property
    def targets(self) -> frozenset[str]:
        return frozenset(b.target for b in self.bindings)


def _same(*names: str) -> tuple[FieldBinding, ...]:
    return tuple(FieldBinding(n, n) for n in names)


DEFAULT_MAPPING: tuple[StageMapping, ...] = (
    StageMapping(StageName.TRANSCRIPT, _same("user_id", "prompt", RUN_ID)),
    StageMapping(StageName.COMPLETION, _same("user_id", "prompt")),
    StageMapping(
        StageName.SPEECH,
        (FieldBinding("completion", "text"),) + _same("user_id", RUN_ID),
    ),
)


class _StageShape(Protocol):
    """What validation needs to know about a stage: its name and I/O models."""

    name: StageName
    input_model: type[BaseModel]
    output_model: type[BaseModel]


def required_fields(model: type[BaseModel]) -> frozenset[str]:
    return frozenset(name for name, info in model.model_fields.items() if info.is_required())


def validate_mapping(
    stages: Sequence[_StageShape],
    table: Sequence[StageMapping],
    seed_fields: frozenset[str] = SEED_FIELDS,
) -> None:
    """Raise ``MappingError`` unless every stage input is satisfiable.

    For stage *i*: binding targets must be fields of its input model and cover
    all required ones, and every source must be a seed field or an output of a
    stage before *i*.
    """
    names = tuple(s.name for s in stages)
    if names != PIPELINE_ORDER:
        raise MappingError(
            f"Stages must run as {[n.value for n in PIPELINE_ORDER]}, got {[n.value for n in names]}"
        )
    if tuple(m.stage for m in table) != PIPELINE_ORDER:
        raise MappingError("Mapping table must have one entry per stage, in pipeline order")

    available = set(seed_fields)
    for stage, mapping in zip(stages, table):
        targets = [b.target for b in mapping.bindings]
        duplicated = {t for t in targets if targets.count(t) > 1}
        if duplicated:
            raise MappingError(f"{stage.name.value}: fields bound more than once: {sorted(duplicated)}")

        declared = frozenset(stage.input_model.model_fields)
        unknown = mapping.targets - declared
        if unknown:
            raise MappingError(f"{stage.name.value}: {sorted(unknown)} are not inputs of {stage.input_model.__name__}")

        missing = required_fields(stage.input_model) - mapping.targets
        if missing:
            raise MappingError(f"{stage.name.value}: required inputs {sorted(missing)} have no binding")

        unsatisfied = sorted(b.source for b in mapping.bindings if b.source not in available)
        if unsatisfied:
            raise MappingError(
                f"{stage.name.value}: sources {unsatisfied} are not produced upstream "
                f"(available: {sorted(available)})"
            )

        available |= frozenset(stage.output_model.model_fields)


def select_fields(
    mapping: StageMapping,
    input_model: type[BaseModel],
    accumulated: Mapping[str, Any],
) -> BaseModel:
    """Narrow the accumulated fields to one stage's input, renaming per the table."""
    return input_model(**{b.target: accumulated[b.source] for b in mapping.bindings})
