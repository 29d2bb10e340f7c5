from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import pandas as pd


DEFAULT_TRAINING_PATH = Path("data/processed/game_states.parquet")


@dataclass(frozen=True)
class TrainingDataSpec:
    path: Path
    min_rows: int = 100
    required_columns: Sequence[str] = ()


def load_training_df(spec: TrainingDataSpec) -> pd.DataFrame:
    """Load game-state observations (parquet or csv) with guardrails.

    One row per observed game state. Fails loudly on a missing file, a tiny
    dataset or missing columns instead of training on the wrong thing.
    """
    path = Path(spec.path)
    if not path.exists():
        raise FileNotFoundError(
            f"Training data not found: {path}. "
            f"Expected default at {DEFAULT_TRAINING_PATH}."
        )

    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path)
    else:
        df = pd.read_parquet(path)

    if len(df) < int(spec.min_rows):
        raise ValueError(f"Training data too small: {path} has {len(df)} rows, expected >= {spec.min_rows}.")

    missing = [c for c in spec.required_columns if c not in df.columns]
    if missing:
        raise ValueError(f"Training data {path} is missing column(s): {missing}")

    return df
