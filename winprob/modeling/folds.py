from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from sklearn.model_selection import KFold

from winprob.modeling.errors import ConfigurationError
from winprob.modeling.types import FoldAssignment

logger = logging.getLogger(__name__)


def assign_folds(n: int, v: int, *, shuffle: bool = False, seed: Optional[int] = None) -> FoldAssignment:
    """Partition rows [0, n) into v folds.

    Rule (KFold semantics): contiguous blocks in row order, the first n % v folds
    get one extra row. With shuffle=True the rows are permuted with `seed` first.
    Same inputs always give the same assignment.
    """

    n = int(n)
    v = int(v)
    if v < 2:
        raise ConfigurationError(f"Number of folds must be >= 2, got {v}")
    if v > n:
        raise ConfigurationError(f"Number of folds ({v}) exceeds number of observations ({n})")
    if shuffle and seed is None:
        raise ConfigurationError("shuffle=True requires an explicit seed")

    kf = KFold(n_splits=v, shuffle=bool(shuffle), random_state=seed if shuffle else None)
    folds = np.empty(n, dtype=int)
    for f, (_, test_idx) in enumerate(kf.split(np.arange(n))):
        folds[test_idx] = f

    fa = FoldAssignment(folds=folds, n_folds=v, shuffle=bool(shuffle), seed=seed)
    logger.info(f"Fold plan: n={n} v={v} shuffle={shuffle} sizes={fa.sizes()}")
    return fa
