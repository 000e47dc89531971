#!/usr/bin/env python3
"""
Pittsburgh street tree analysis - clean, split, fit one forest per question.

Usage:
    python -m street_trees.main                      # Clean, split, train, evaluate
    python -m street_trees.main --use-cache          # Reuse saved models when data and params match
    python -m street_trees.main --data-path PATH     # Custom dataset path
    python -m street_trees.main --questions land_use overhead_utilities
"""
import argparse
import sys
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .config import (
    DATA_PATH, OUTPUT_DIR, RANDOM_STATE, TRAIN_SIZE, N_ESTIMATORS, TOP_K_FEATURES,
    OVERHEAD_FLAG_AFTER_RECODE,
)
from .data_loader import load_data, print_data_report
from .evaluation import ModelEvaluator
from .exceptions import StreetTreeError
from .features import infer_domains
from .models import ForestParams, ModelCache, ModelTrainer
from .preprocessing import CleaningReport, clean_dataset, create_train_holdout_split
from .questions import RESEARCH_QUESTIONS

warnings.filterwarnings('ignore', category=FutureWarning)


@dataclass
class AnalysisResult:
    """Everything one run produced."""
    cleaning: CleaningReport
    train: pd.DataFrame
    holdout: pd.DataFrame
    evaluator: ModelEvaluator
    models: Dict[str, object] = field(default_factory=dict)
    output_files: Dict[str, Path] = field(default_factory=dict)

    @property
    def skipped(self) -> List[str]:
        return [k for k, r in self.evaluator.results.items() if r['status'] != 'ok']


class PipelineAborted(Exception):
    """A shared stage failed; no research question can run."""

    def __init__(self, stage: str, error: Exception):
        self.stage = stage
        self.error = error
        self.kind = getattr(error, "kind", type(error).__name__)
        super().__init__(f"{stage} failed [{self.kind}]: {error}")


def _proportion(value: str) -> float:
    try:
        p = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if not 0.0 < p < 1.0:
        raise argparse.ArgumentTypeError(f"must be strictly between 0 and 1, got {value}")
    return p


def parse_args(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(description='Pittsburgh Street Tree Analysis')
    parser.add_argument('--data-path', '-d', type=str, default=None,
                        help='Path to the tree CSV export')
    parser.add_argument('--output-dir', '-o', type=str, default=None,
                        help='Directory for metrics and model artifacts')
    parser.add_argument('--use-cache', action='store_true',
                        help='Load saved models instead of retraining when data and params match')
    parser.add_argument('--questions', nargs='+', choices=sorted(RESEARCH_QUESTIONS),
                        default=None, help='Research questions to run (default: all)')
    parser.add_argument('--n-estimators', type=int, default=N_ESTIMATORS,
                        help='Trees per forest')
    parser.add_argument('--seed', type=int, default=RANDOM_STATE,
                        help='Seed for the split and the forests')
    parser.add_argument('--train-size', type=_proportion, default=TRAIN_SIZE,
                        help='Training proportion of the cleaned table')
    parser.add_argument('--top-k', type=int, default=TOP_K_FEATURES,
                        help='Features listed in each importance ranking')
    parser.add_argument('--overhead-after-recode', action='store_true',
                        default=OVERHEAD_FLAG_AFTER_RECODE,
                        help="Derive overhead_numeric after folding 'Conflicting' into 'Yes'")
    return parser.parse_args(argv)


def run_analysis(
    data_path=None,
    output_dir=None,
    questions: Optional[Sequence[str]] = None,
    params: ForestParams = None,
    train_size: float = TRAIN_SIZE,
    use_cache: bool = False,
    top_k: int = TOP_K_FEATURES,
    overhead_flag_after_recode: bool = OVERHEAD_FLAG_AFTER_RECODE,
) -> AnalysisResult:
    """
    Run the shared cleaning stages once, then every research question.

    Raises:
        PipelineAborted: Loading, cleaning or splitting failed.
    """
    params = params or ForestParams()
    output_dir = Path(output_dir) if output_dir else OUTPUT_DIR
    selected = [RESEARCH_QUESTIONS[k] for k in (questions or RESEARCH_QUESTIONS)]

    # ---------------------------------------------------------------------
    # Shared stages: any failure here ends the run
    # ---------------------------------------------------------------------
    stage = "load"
    try:
        raw = load_data(data_path or DATA_PATH)
        print_data_report(raw)

        stage = "clean"
        cleaned, cleaning = clean_dataset(raw, overhead_flag_after_recode=overhead_flag_after_recode)

        stage = "split"
        train, holdout = create_train_holdout_split(
            cleaned, train_size=train_size, random_state=params.random_state
        )
    except (StreetTreeError, ValueError) as e:
        raise PipelineAborted(stage, e) from e

    # ---------------------------------------------------------------------
    # Per-question stages: a failure skips only that question
    # ---------------------------------------------------------------------
    cache = ModelCache(output_dir / "models")
    # Categorical levels from the whole cleaned table, shared by train and holdout
    trainer = ModelTrainer(params=params, cache=cache, domains=infer_domains(cleaned))
    evaluator = ModelEvaluator(top_k=top_k)

    print(f"\n🎯 Training {len(selected)} research question models...")
    for question in selected:
        print(f"\n🌳 {question.key}: {question.description}")
        try:
            if use_cache:
                model = trainer.load_or_fit(question, train)
            else:
                model = trainer.fit(question, train)
            evaluator.evaluate(model, holdout)
        except (StreetTreeError, ValueError) as e:
            kind = getattr(e, 'kind', type(e).__name__)
            print(f"\n   ⚠️  Skipping {question.key} [{kind}]: {e}")
            evaluator.record_failure(question.key, e)
            continue
        evaluator.print_report(question.key)

    evaluator.print_comparison_summary()
    output_files = evaluator.save_results(output_dir)

    return AnalysisResult(
        cleaning=cleaning,
        train=train,
        holdout=holdout,
        evaluator=evaluator,
        models=dict(trainer.models),
        output_files=output_files,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    print("\n🌲 PITTSBURGH STREET TREE ANALYSIS")
    print("="*50)
    print("   ✓ load → normalize → filter/derive → drop missing → split → one forest per question")

    params = ForestParams(n_estimators=args.n_estimators, random_state=args.seed)
    try:
        result = run_analysis(
            data_path=args.data_path,
            output_dir=args.output_dir,
            questions=args.questions,
            params=params,
            train_size=args.train_size,
            use_cache=args.use_cache,
            top_k=args.top_k,
            overhead_flag_after_recode=args.overhead_after_recode,
        )
    except PipelineAborted as e:
        print(f"\n❌ Pipeline aborted at stage '{e.stage}' [{e.kind}]: {e.error}")
        return 1

    print(f"\n📁 Outputs: {result.output_files['metrics'].parent}")
    if result.skipped:
        print(f"⚠️  Skipped questions: {', '.join(result.skipped)}")
    print("\n✅ Done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
