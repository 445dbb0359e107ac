"""Translation between prompt-local reference indices and stable identifiers.

The model only ever sees a candidate's position in a short, capped list. Any
position it sends back is untrusted input: it is resolved against the same
list, and anything that does not name a real position is dropped.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Sequence, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REFERENCE_CAP = 10
EMPTY_REFERENCES_TEXT = "No stories available"


@dataclass(frozen=True)
class IndexedCandidate(Generic[T]):
    index: int
    item: T


@dataclass(frozen=True)
class ReferenceList(Generic[T]):
    """An ordered, capped list of candidates numbered from zero.

    Attributes:
        candidates (tuple[IndexedCandidate, ...]): The visible candidates in prompt order.
        id_getter (Callable[[T], str]): Returns the stable identifier of a candidate.

    """

    candidates: tuple[IndexedCandidate[T], ...]
    id_getter: Callable[[T], str]

    def __len__(self) -> int:
        return len(self.candidates)

    def render(self, formatter: Callable[[T], str], empty_text: str = EMPTY_REFERENCES_TEXT) -> str:
        """Render the candidates as `[index] text` lines for prompt embedding.

        Args:
            formatter (Callable[[T], str]): Describes one candidate. Must not include its stable id.
            empty_text (str): Returned when there are no candidates.

        Returns:
            str: The rendered block.

        """
        if not self.candidates:
            return empty_text
        return "\n".join(f"[{c.index}] {formatter(c.item)}" for c in self.candidates)


@dataclass(frozen=True)
class Ok:
    value: str


@dataclass(frozen=True)
class InvalidReference:
    """Why a model-supplied reference was rejected."""

    raw: Any
    reason: str


@dataclass(frozen=True)
class Err:
    error: InvalidReference


@dataclass(frozen=True)
class ReferenceBinding:
    """Where a reference index appears in a payload and where its id goes.

    Attributes:
        path (str): Dotted path to the index field. A `[]` suffix on a segment
            walks every element of that array, e.g. `questions[].best_story_index`.
        target (str): Field name, beside the index field, that receives the resolved id.

    """

    path: str
    target: str


def default_id_getter(item: Any) -> str:
    if isinstance(item, dict):
        return str(item["id"])
    return str(item.id)


class ReferenceIndexMapper:
    """Assigns and resolves prompt-local reference indices."""

    def __init__(self, cap: int = DEFAULT_REFERENCE_CAP):
        self.cap = cap

    def to_indexed_list(
        self,
        candidates: Sequence[T],
        cap: int | None = None,
        id_getter: Callable[[T], str] = default_id_getter,
    ) -> ReferenceList[T]:
        """Truncate `candidates` to the cap and number them from zero.

        Args:
            candidates (Sequence[T]): The candidates in preference order.
            cap (int | None): Overrides the mapper's cap for this call.
            id_getter (Callable[[T], str]): Returns a candidate's stable id.

        Returns:
            ReferenceList[T]: The visible candidates. Items past the cap can never be referenced.

        """
        limit = self.cap if cap is None else cap
        visible = tuple(IndexedCandidate(index=i, item=item) for i, item in enumerate(candidates[:limit]))
        if len(candidates) > limit:
            _msg = f"Reference list truncated from {len(candidates)} to {limit} candidates"
            log.debug(_msg)
        return ReferenceList(candidates=visible, id_getter=id_getter)

    def resolve_one(self, raw: Any, references: ReferenceList) -> Ok | Err:
        """Resolve one model-supplied index.

        Args:
            raw (Any): The value the model returned.
            references (ReferenceList): The list the prompt was built from.

        Returns:
            Ok | Err: The stable id, or the reason the value was rejected.

        Notes:
            1. None, booleans and non-numeric values are rejected.
            2. Floats are accepted only when integral (2.0 resolves like 2).
            3. Negative indices and indices past the end are rejected.

        """
        if raw is None:
            return Err(InvalidReference(raw, "missing"))
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            return Err(InvalidReference(raw, "not a number"))
        if isinstance(raw, float):
            if not raw.is_integer():
                return Err(InvalidReference(raw, "not an integer"))
            raw = int(raw)
        if raw < 0 or raw >= len(references):
            return Err(InvalidReference(raw, "out of range"))
        candidate = references.candidates[raw]
        return Ok(references.id_getter(candidate.item))

    def resolve(self, indices: Sequence[Any] | None, references: ReferenceList) -> list[str]:
        """Resolve a batch of indices, keeping only the valid ones.

        Args:
            indices (Sequence[Any] | None): Values returned by the model.
            references (ReferenceList): The list the prompt was built from.

        Returns:
            list[str]: Stable ids of the valid indices, in input order.

        """
        resolved = []
        for raw in indices or []:
            outcome = self.resolve_one(raw, references)
            if isinstance(outcome, Ok):
                resolved.append(outcome.value)
            else:
                _msg = f"Dropping reference {outcome.error.raw!r}: {outcome.error.reason}"
                log.debug(_msg)
        return resolved

    def apply_bindings(
        self,
        payload: Any,
        bindings: Sequence[ReferenceBinding],
        references: ReferenceList,
    ) -> Any:
        """Replace reference indices in a parsed payload with stable ids.

        Args:
            payload (Any): Parsed model output. Modified in place.
            bindings (Sequence[ReferenceBinding]): Which fields carry indices.
            references (ReferenceList): The list the prompt was built from.

        Returns:
            Any: The same payload, for chaining.

        Notes:
            1. Each index field is removed from its containing object.
            2. A scalar index becomes a single id or None. A list of indices, or any
               field whose path ends in `[]`, becomes a list of ids.
            3. Containers missing along the path, and absent index fields, are skipped.

        """
        for binding in bindings:
            segments = binding.path.split(".")
            for container in self._walk(payload, segments[:-1]):
                self._bind_field(container, segments[-1], binding.target, references)
        return payload

    def _walk(self, node: Any, segments: list[str]) -> list[dict]:
        if not segments:
            return [node] if isinstance(node, dict) else []
        head, rest = segments[0], segments[1:]
        is_array = head.endswith("[]")
        name = head[:-2] if is_array else head
        if not isinstance(node, dict) or name not in node:
            return []
        child = node[name]
        if is_array:
            if not isinstance(child, list):
                return []
            found = []
            for element in child:
                found.extend(self._walk(element, rest))
            return found
        return self._walk(child, rest)

    def _bind_field(self, container: dict, field: str, target: str, references: ReferenceList) -> None:
        is_array = field.endswith("[]")
        name = field[:-2] if is_array else field
        if name not in container:
            return
        raw = container.pop(name)
        if is_array or isinstance(raw, list):
            if not isinstance(raw, list):
                raw = [] if raw is None else [raw]
            container[target] = self.resolve(raw, references)
            return
        outcome = self.resolve_one(raw, references)
        if isinstance(outcome, Ok):
            container[target] = outcome.value
        else:
            if raw is not None:
                _msg = f"Dropping reference {raw!r}: {outcome.error.reason}"
                log.debug(_msg)
            container[target] = None
