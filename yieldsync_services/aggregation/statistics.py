from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Statistics:
    min: float = 0.0
    max: float = 0.0
    average: float = 0.0
    median: float = 0.0
    standard_deviation: float = 0.0


def calculate_statistics(values) -> Statistics:
    """
    Summary statistics over the numeric samples. Standard deviation is the
    population one (divisor N). No samples gives all zeros.
    """
    if len(values) == 0:
        return Statistics()

    samples = np.asarray(values, dtype=float)
    return Statistics(
        min=float(np.min(samples)),
        max=float(np.max(samples)),
        average=float(np.mean(samples)),
        median=float(np.median(samples)),
        standard_deviation=float(np.std(samples)),
    )
