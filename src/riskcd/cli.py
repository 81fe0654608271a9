"""
Command line entry point.

Usage:
  riskcd --csv data.csv --target outcome --cv 5 --a -5 --b 5 \
      --runs 5 --seed 1234 --out model.npz --card card.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from .exceptions import RiskCDError
from .linear_model import fit
from .model_selection import cross_validate
from .scorecard import score_card_frame
from .serialization import save_model_npz, save_score_card_json


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="riskcd", description="Fit an integer risk score model from a CSV file.")
    ap.add_argument("--csv", type=str, required=True, help="Numeric CSV with features and the outcome column.")
    ap.add_argument("--target", type=str, required=True, help="Name of the 0/1 outcome column.")
    ap.add_argument("--weights", type=str, default=None, help="Optional column of row weights.")
    penalty = ap.add_mutually_exclusive_group()
    penalty.add_argument("--lambda0", type=float, default=0.0, help="Fixed L0 penalty.")
    penalty.add_argument("--cv", type=int, default=None, help="Choose lambda0 by K-fold cross-validation.")
    ap.add_argument("--rule", type=str, default="min", choices=["min", "1se"])
    ap.add_argument("--a", type=int, default=-10, help="Smallest allowed points per feature.")
    ap.add_argument("--b", type=int, default=10, help="Largest allowed points per feature.")
    ap.add_argument("--runs", type=int, default=5, help="Number of restarts.")
    ap.add_argument("--max-iters", type=int, default=100)
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--n-jobs", type=int, default=1)
    ap.add_argument("--out", type=str, default=None, help="Write the fitted model to this .npz file.")
    ap.add_argument("--card", type=str, default=None, help="Write the score card to this JSON file.")
    ap.add_argument("--verbose", action="store_true")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    df = pd.read_csv(args.csv)
    missing = [c for c in (args.target, args.weights) if c is not None and c not in df.columns]
    if missing:
        print(f"error: columns not found in {args.csv}: {missing}", file=sys.stderr)
        return 2
    y = df[args.target]
    weights = df[args.weights] if args.weights else None
    X = df.drop(columns=[c for c in (args.target, args.weights) if c is not None])

    try:
        lambda0 = args.lambda0
        if args.cv is not None:
            cv = cross_validate(
                X, y, weights=weights, nfolds=args.cv, seed=args.seed,
                a=args.a, b=args.b, n_train_runs=args.runs, max_iters=args.max_iters,
                n_jobs=args.n_jobs, verbose=args.verbose,
            )
            lambda0 = cv.select(args.rule)
            print(f"[CV] selected lambda0={lambda0:.4g} ({args.rule})")
        model = fit(
            X, y, weights=weights, n_train_runs=args.runs, lambda0=lambda0,
            a=args.a, b=args.b, max_iters=args.max_iters, seed=args.seed,
            n_jobs=args.n_jobs, verbose=args.verbose,
        )
    except RiskCDError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(f"intercept={model.intercept} gamma={model.gamma:.6f} objective={model.objective:.6f} "
          f"({model.status.value})")
    card = score_card_frame(model)
    if card.empty:
        print("Fewer than two features were selected; no score card.")
    else:
        print(card.to_string(index=False))
        print(model.score_map.to_string(index=False))

    if args.out:
        save_model_npz(model, Path(args.out))
        print(f"model written to {args.out}")
    if args.card:
        save_score_card_json(model, Path(args.card))
        print(f"score card written to {args.card}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
