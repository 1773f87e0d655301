"""Models Package - Class-centroid distance estimation and scoring"""

from .class_distance import (
    ClassDistanceOptions,
    ClassCentroid,
    ClassCentroidModel,
    fit_class_distance,
    score
)

__all__ = [
    'ClassDistanceOptions',
    'ClassCentroid',
    'ClassCentroidModel',
    'fit_class_distance',
    'score',
]
