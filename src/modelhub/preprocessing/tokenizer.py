"""
Dataset tokenization and row filtering.

Turns a dataset into token rows and drops the header row, malformed rows,
and rows whose missing values cannot be imputed. Files are streamed with
pandas in partition-sized chunks; in-memory line sources are split line by
line.
"""

import csv
import math
from collections import Counter
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

import pandas as pd

from modelhub.config.settings import DatasetConfig, ImputeOption
from modelhub.modeling.artifact import Feature
from modelhub.utils.logging import get_logger

log = get_logger(__name__)


class FileLines:
    """
    Re-iterable view over a delimited text file.

    Iterating yields raw lines; rows() streams parsed token rows. Each pass
    reopens the file, so the preprocessing pipeline can make its fit pass
    and its transform pass without holding the dataset in memory.
    """

    def __init__(self, path: Path, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.encoding = encoding

    def __iter__(self) -> Iterator[str]:
        with self.path.open(encoding=self.encoding, newline="") as f:
            for line in f:
                yield line.rstrip("\r\n")

    def rows(self, dataset: DatasetConfig) -> Iterator[list[str]]:
        """
        Stream stripped token rows, one partition-sized chunk at a time.

        Every cell is read as a string so that missing-value markers reach
        the row filter unchanged. Rows wider than the header are kept at
        their full width and short rows lose their padding, so the row
        filter reports both as malformed.

        Args:
            dataset: Dataset layout (separator, header, partition size).
        """
        overlong: list[list[str]] = []

        def keep_overlong(fields: list[str]) -> None:
            overlong.append(fields)
            return None

        try:
            reader = pd.read_csv(
                self.path,
                sep=dataset.separator,
                header=0 if dataset.header else None,
                dtype=str,
                keep_default_na=False,
                encoding=self.encoding,
                engine="python",
                on_bad_lines=keep_overlong,
                chunksize=dataset.partition_size,
            )
        except pd.errors.EmptyDataError:
            log.warning("Dataset file is empty", path=str(self.path))
            return

        with reader:
            for chunk in reader:
                for values in chunk.itertuples(index=False, name=None):
                    yield [v.strip() for v in values if isinstance(v, str)]
                while overlong:
                    yield [str(f).strip() for f in overlong.pop(0)]


class LineTokenizer:
    """Splits lines into fields, honouring quoted separators."""

    def __init__(self, dataset: DatasetConfig) -> None:
        self.dataset = dataset
        self.separator = dataset.separator
        self.header = dataset.header

    def tokenize(self, line: str) -> list[str]:
        """Split a single line into stripped fields."""
        fields = next(csv.reader([line], delimiter=self.separator), [])
        return [field.strip() for field in fields]

    def rows(self, lines: Iterable[str]) -> Iterator[list[str]]:
        """
        Tokenize a dataset lazily.

        FileLines sources are parsed by pandas. For other line sources the
        first line is skipped when the dataset has a header, and blank
        lines are skipped everywhere.
        """
        if isinstance(lines, FileLines):
            yield from lines.rows(self.dataset)
            return

        skip_header = self.header
        for line in lines:
            if skip_header:
                skip_header = False
                continue
            if not line.strip():
                continue
            yield self.tokenize(line)


class RowFilter:
    """
    Drops rows that cannot be used for training.

    A row is rejected when:
    - its width differs from the schema width (malformed),
    - a numerical value of a used column is not a number (malformed),
    - a used column with impute option DISCARD is missing (discarded),
    - the response value is missing (discarded).

    Columns that are excluded from training are never inspected.
    """

    def __init__(
        self,
        features: Sequence[Feature],
        dataset: DatasetConfig,
        response_index: int = -1,
    ) -> None:
        self.width = max(f.index for f in features) + 1
        self.missing_values = frozenset(dataset.missing_values)
        self.response_index = response_index
        self._checked = [
            f for f in sorted(features, key=lambda f: f.index)
            if f.include or f.index == response_index
        ]

    def is_missing(self, token: str | None) -> bool:
        """Whether a token denotes a missing value."""
        return token is None or token in self.missing_values

    def check(self, row: Sequence[str]) -> str | None:
        """
        Classify a row.

        Returns:
            None if the row is usable, otherwise 'malformed' or 'discarded'.
        """
        if len(row) != self.width:
            return "malformed"

        for feature in self._checked:
            token = row[feature.index]
            if self.is_missing(token):
                if (
                    feature.index == self.response_index
                    or feature.impute_option == ImputeOption.DISCARD
                ):
                    return "discarded"
                continue
            if not feature.is_categorical:
                try:
                    value = float(token)
                except ValueError:
                    return "malformed"
                if not math.isfinite(value):
                    return "malformed"
        return None

    def filter(
        self,
        rows: Iterable[Sequence[str]],
        stats: Counter[str] | None = None,
    ) -> Iterator[Sequence[str]]:
        """
        Yield usable rows, counting outcomes into ``stats`` if given.

        Args:
            rows: Tokenized rows.
            stats: Counter receiving 'accepted', 'malformed' and 'discarded'.
        """
        for row in rows:
            verdict = self.check(row)
            if stats is not None:
                stats[verdict or "accepted"] += 1
            if verdict is None:
                yield row
