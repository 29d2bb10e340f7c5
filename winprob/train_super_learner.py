from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from winprob.config import SuperLearnerConfig
from winprob.data.training_loader import DEFAULT_TRAINING_PATH, TrainingDataSpec, load_training_df
from winprob.modeling.ensemble import METHODS
from winprob.modeling.errors import SuperLearnerError
from winprob.modeling.pipeline import run_pipeline

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Fit the super learner and write evaluation tables.")
    ap.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_TRAINING_PATH,
        help=f"Path to game-state parquet/csv (default: {DEFAULT_TRAINING_PATH})",
    )
    ap.add_argument("--config", type=Path, default=None, help="JSON config; CLI flags override it")
    ap.add_argument("--out-dir", type=Path, default=Path("reports/super_learner"))
    ap.add_argument("--min-rows", type=int, default=100)
    ap.add_argument("--folds", type=int, default=None, dest="n_folds")
    ap.add_argument("--shuffle", action="store_true", default=None)
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--method", choices=list(METHODS), default=None)
    ap.add_argument("--bin-width", type=float, default=None)
    ap.add_argument("--learners", type=str, default=None, help="Comma-separated learner names")
    ap.add_argument("--time-left", type=int, nargs=2, metavar=("LOW", "HIGH"), default=None)
    ap.add_argument("--differential", type=int, nargs=2, metavar=("LOW", "HIGH"), default=None)
    ap.add_argument("--label", type=str, default=None, dest="label_column")
    ap.add_argument("--tie-column", type=str, default=None)
    ap.add_argument("--n-jobs", type=int, default=None)
    ap.add_argument("--progress", action="store_true")
    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> SuperLearnerConfig:
    base = SuperLearnerConfig.from_json(args.config) if args.config else SuperLearnerConfig()
    learners = tuple(s.strip() for s in args.learners.split(",") if s.strip()) if args.learners else None
    return base.with_overrides(
        n_folds=args.n_folds,
        shuffle=args.shuffle,
        seed=args.seed,
        method=args.method,
        bin_width=args.bin_width,
        learners=learners,
        time_left_range=tuple(args.time_left) if args.time_left else None,
        differential_range=tuple(args.differential) if args.differential else None,
        label_column=args.label_column,
        tie_column=args.tie_column,
        n_jobs=args.n_jobs,
    ).validate()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    args = parse_args(argv)

    try:
        config = build_config(args)
        df = load_training_df(
            TrainingDataSpec(
                path=args.data,
                min_rows=args.min_rows,
                required_columns=[config.label_column] + config.features(),
            )
        )
        result = run_pipeline(df, config, progress=args.progress)
    except (SuperLearnerError, FileNotFoundError, ValueError) as e:
        logger.error(f"Super learner run failed: {e}")
        return 1

    result.write(args.out_dir)
    logger.info(f"Ensemble AUC: {result.auc.ensemble.auc:.4f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
