"""
Feature alignment between caller bindings and a model's input slots.

A model consumes vectors in trained slot order, which differs from both the
original dataset column order and the order in which a caller declares its
bindings. ``bind`` resolves the mapping once per (artifact, binding set)
and freezes it as an AlignmentTable; per request, the table assembles the
vector in a single pass over the slots.

Tolerance is asymmetric: bindings for features the model does not use are
ignored, while trained features without a binding leave their slot unbound
(None), which the predictor imputes.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from modelhub.exceptions import SchemaSkewError
from modelhub.modeling.artifact import Feature, ModelArtifact
from modelhub.serving.bindings import ValueExtractor
from modelhub.utils.logging import get_logger

log = get_logger(__name__)

AlignedVector = list[str | None]


@dataclass(frozen=True)
class AlignmentTable:
    """
    Frozen slot-to-extractor mapping for one artifact.

    Attributes:
        slots: Extractor per trained slot, None for unbound slots.
        slot_names: Feature name per trained slot.
        schema_digest: Digest of the artifact the table was bound to.
        ignored: Binding names that match no trained feature; informational
            only, so extra bindings never change table equality.
    """

    slots: tuple[ValueExtractor | None, ...]
    slot_names: tuple[str, ...]
    schema_digest: str
    ignored: tuple[str, ...] = field(default=(), compare=False)

    @property
    def width(self) -> int:
        return len(self.slots)

    @property
    def unbound_names(self) -> tuple[str, ...]:
        """Trained features that no binding supplies."""
        return tuple(name for name, slot in zip(self.slot_names, self.slots) if slot is None)

    def assemble(self, context: object) -> AlignedVector:
        """Build the aligned vector for one request context."""
        return [None if extractor is None else extractor(context) for extractor in self.slots]

    def check(self, artifact: ModelArtifact) -> None:
        """
        Verify the table still matches an artifact.

        Raises:
            SchemaSkewError: If the artifact's input space differs.
        """
        if self.width != artifact.input_width:
            raise SchemaSkewError(artifact.input_width, self.width)
        if self.schema_digest != artifact.schema_digest:
            raise SchemaSkewError(
                artifact.input_width,
                self.width,
                detail="feature schema changed since the table was bound",
            )


def align(
    features: Sequence[Feature],
    new_to_old: Sequence[int],
    bindings: Mapping[str, ValueExtractor],
    schema_digest: str = "",
) -> AlignmentTable:
    """
    Resolve bindings against a schema and index map.

    Args:
        features: Full dataset schema.
        new_to_old: Trained slot to original index mapping.
        bindings: Feature name to extractor.
        schema_digest: Digest recorded in the table.

    Returns:
        The frozen alignment table.
    """
    slot_of = {old: new for new, old in enumerate(new_to_old)}
    by_index = {f.index: f for f in features}
    slots: list[ValueExtractor | None] = [None] * len(new_to_old)
    slot_names = tuple(by_index[old].name for old in new_to_old)

    known = set()
    for feature in sorted(features, key=lambda f: f.index):
        known.add(feature.name)
        extractor = bindings.get(feature.name)
        if extractor is None:
            continue
        new_index = slot_of.get(feature.index)
        if new_index is None:
            # excluded or response column
            log.debug("Binding for untrained feature skipped", feature=feature.name)
            continue
        slots[new_index] = extractor

    ignored = tuple(name for name in bindings if name not in known)
    if ignored:
        log.debug("Bindings for unknown features ignored", names=list(ignored))

    table = AlignmentTable(
        slots=tuple(slots),
        slot_names=slot_names,
        schema_digest=schema_digest,
        ignored=ignored,
    )
    if table.unbound_names:
        log.info("Trained features without binding", names=list(table.unbound_names))
    return table


def bind(artifact: ModelArtifact, bindings: Mapping[str, ValueExtractor]) -> AlignmentTable:
    """Build the alignment table for an artifact."""
    return align(artifact.features, artifact.new_to_old, bindings, artifact.schema_digest)


def project_row(artifact: ModelArtifact, row: Sequence[str | None]) -> AlignedVector:
    """
    Replay the index map against a positional row.

    Args:
        artifact: Model whose index map to replay.
        row: Values in original column order, either with all schema
            columns or without the response column.

    Returns:
        Aligned vector in trained slot order.

    Raises:
        SchemaSkewError: If the row width fits neither layout.
    """
    full_width = max(f.index for f in artifact.features) + 1
    if len(row) == full_width:
        return [row[old] for old in artifact.new_to_old]

    response_index = artifact.response_index
    if response_index >= 0 and len(row) == full_width - 1:
        return [row[old - 1 if old > response_index else old] for old in artifact.new_to_old]

    raise SchemaSkewError(
        full_width,
        len(row),
        detail="positional rows must follow the original column layout",
    )
