"""Conversion between the statistics vector and its message form.

The formation statistics are the first and second order spatial moments
    [m_x, m_y, m_xx, m_xy, m_yy]
carried on the wire as named fields and handled by the math core as a
numpy vector.
"""

import logging
from typing import NamedTuple, Optional, Sequence

import numpy as np

from .config import NUMBER_OF_STATS

_logger = logging.getLogger(__name__)


class FormationStatistics(NamedTuple):
    """Message form of the statistics vector."""

    m_x: float = 0.0
    m_y: float = 0.0
    m_xx: float = 0.0
    m_xy: float = 0.0
    m_yy: float = 0.0

    def to_dict(self) -> dict:
        return {name: float(value) for name, value in zip(self._fields, self)}

    @staticmethod
    def from_dict(data: dict) -> "FormationStatistics":
        return FormationStatistics(*(float(data[name]) for name in FormationStatistics._fields))


ZERO_STATISTICS = FormationStatistics()


def statistics_to_vector(stats: FormationStatistics) -> np.ndarray:
    """Return the statistics as a float vector of length 5."""
    return np.array(stats, dtype=float)


def vector_to_statistics(
    vector: Sequence[float],
    fallback: Optional[FormationStatistics] = ZERO_STATISTICS,
) -> Optional[FormationStatistics]:
    """Convert a statistics vector into its message form.

    A vector of the wrong dimension or with non-finite entries is a data
    error: it is logged and the fallback (zero statistics unless given,
    possibly None) is returned, so a malformed vector never propagates into
    the cycle.
    """
    values = np.asarray(vector, dtype=float).ravel()
    if values.size != NUMBER_OF_STATS:
        _logger.error("Wrong statistics vector size (%d)", values.size)
        return fallback
    if not np.all(np.isfinite(values)):
        _logger.error("Non-finite statistics vector %s", tuple(values))
        return fallback
    return FormationStatistics(*(float(v) for v in values))
