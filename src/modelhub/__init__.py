"""
Modelhub: model training, storage and prediction serving.

This package provides the tabular preprocessing pipeline used at training
time, a versioned model artifact format, and the serving path that aligns
caller-supplied feature values with the column order a model was trained on.
"""

from importlib.metadata import version

__version__ = version("modelhub")

__all__ = ["__version__"]
