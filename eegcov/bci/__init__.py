"""Paradigm-aware encoding of BCI recordings."""

from eegcov.bci.paradigms import (
    Paradigm,
    parse_paradigm,
    resolve_target_class,
    reduce_prototype_pca,
    build_prototype
)
from eegcov.bci.pipeline import assemble_and_encode

__all__ = [
    'Paradigm',
    'parse_paradigm',
    'resolve_target_class',
    'reduce_prototype_pca',
    'build_prototype',
    'assemble_and_encode',
]
