"""
Feature bindings: how request values are extracted per feature name.

A binding set is an ordered mapping from feature name to a value extractor,
a plain callable that takes the request context and returns the raw value
as a string, or None when the value is absent.

Extractor expressions:
    ``$.order.items[0].price``  path lookup into nested mappings/sequences
    ``'gold'``                  constant value
    ``age``                     top-level field of the context
"""

import re
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any

from modelhub.config.settings import BindingSpec
from modelhub.exceptions import ConfigurationError

ValueExtractor = Callable[[Any], str | None]

_PATH_TOKEN = re.compile(r"\.([A-Za-z_][\w-]*)|\[(\d+)\]|\['([^']*)'\]")


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PathExtractor:
    """
    Looks up a value along a ``$``-rooted path.

    Missing keys, out-of-range indices and type mismatches along the path
    yield None.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.steps = self._parse(expression)

    @staticmethod
    def _parse(expression: str) -> tuple[str | int, ...]:
        if not expression.startswith("$"):
            msg = f"Path expression must start with '$': {expression!r}"
            raise ConfigurationError(msg)

        steps: list[str | int] = []
        pos = 1
        while pos < len(expression):
            match = _PATH_TOKEN.match(expression, pos)
            if match is None:
                msg = f"Invalid path expression {expression!r} at position {pos}"
                raise ConfigurationError(msg)
            name, index, quoted = match.groups()
            if index is not None:
                steps.append(int(index))
            else:
                steps.append(name if name is not None else quoted)
            pos = match.end()
        return tuple(steps)

    def __call__(self, context: Any) -> str | None:
        current = context
        for step in self.steps:
            if isinstance(step, int):
                if isinstance(current, Sequence) and not isinstance(current, str):
                    if step >= len(current):
                        return None
                    current = current[step]
                else:
                    return None
            elif isinstance(current, Mapping):
                if step not in current:
                    return None
                current = current[step]
            else:
                return None
        return _to_text(current)

    def __repr__(self) -> str:
        return f"PathExtractor({self.expression!r})"


class ConstantExtractor:
    """Always returns the same value."""

    def __init__(self, value: str) -> None:
        self.value = value

    def __call__(self, context: Any) -> str | None:
        return self.value

    def __repr__(self) -> str:
        return f"ConstantExtractor({self.value!r})"


class FieldExtractor:
    """Reads a top-level field from a mapping context."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __call__(self, context: Any) -> str | None:
        if not isinstance(context, Mapping):
            return None
        return _to_text(context.get(self.name))

    def __repr__(self) -> str:
        return f"FieldExtractor({self.name!r})"


def compile_extractor(expression: str) -> ValueExtractor:
    """
    Compile a binding expression into an extractor.

    Raises:
        ConfigurationError: If the expression is blank or malformed.
    """
    expression = expression.strip()
    if not expression:
        msg = "Binding expression must not be blank"
        raise ConfigurationError(msg)
    if expression.startswith("$"):
        return PathExtractor(expression)
    if len(expression) >= 2 and expression[0] == expression[-1] == "'":
        return ConstantExtractor(expression[1:-1])
    return FieldExtractor(expression)


class BindingSet(Mapping[str, ValueExtractor]):
    """
    Ordered, immutable mapping from feature name to extractor.

    Raises:
        ConfigurationError: On blank or duplicate names, or non-callable
            extractors.
    """

    def __init__(self, bindings: Iterable[tuple[str, ValueExtractor]]) -> None:
        items: dict[str, ValueExtractor] = {}
        for name, extractor in bindings:
            if not name or not name.strip():
                msg = "Binding name must not be blank"
                raise ConfigurationError(msg)
            if name in items:
                msg = f"Feature {name!r} is bound more than once"
                raise ConfigurationError(msg)
            if not callable(extractor):
                msg = f"Extractor for {name!r} is not callable"
                raise ConfigurationError(msg)
            items[name] = extractor
        self._items = items

    @classmethod
    def from_specs(
        cls,
        specs: Iterable[BindingSpec],
        compiler: Callable[[str], ValueExtractor] = compile_extractor,
    ) -> "BindingSet":
        """Compile configured (name, expression) pairs."""
        return cls((spec.name, compiler(spec.expression)) for spec in specs)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "BindingSet":
        """Bind each name to the context field of the same name."""
        return cls((name, FieldExtractor(name)) for name in names)

    def __getitem__(self, name: str) -> ValueExtractor:
        return self._items[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"BindingSet({list(self._items)})"
