"""
Training-time preprocessing.

Tokenizes raw dataset lines, drops unusable rows, derives the index map,
freezes categorical encodings and imputation values, and vectorizes rows
for the trainers.
"""

from modelhub.preprocessing.pipeline import PreprocessedData, PreprocessingPipeline
from modelhub.preprocessing.selection import (
    FeatureEncoder,
    FeatureSelector,
    FittedEncoding,
    compute_index_map,
)
from modelhub.preprocessing.tokenizer import FileLines, LineTokenizer, RowFilter
from modelhub.preprocessing.vectorizer import Vectorizer

__all__ = [
    "FeatureEncoder",
    "FeatureSelector",
    "FileLines",
    "FittedEncoding",
    "LineTokenizer",
    "PreprocessedData",
    "PreprocessingPipeline",
    "RowFilter",
    "Vectorizer",
    "compute_index_map",
]
