import argparse
import sys
import traceback

from models.errors import AnalysisError
from pipeline.config import load_config
from pipeline.analysis_pipeline import AnalysisPipeline


def build_parser():
    parser = argparse.ArgumentParser(
        prog="knn-analysis",
        description="Stratified split, repeated-CV k search, Youden threshold and evaluation "
                    "of a nearest-neighbor classifier."
    )
    parser.add_argument("--config", default=None, help="Path to config.yaml (default: search cwd, then project root)")
    parser.add_argument("--output-dir", default=None, help="Override output.output_dir")
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel CV workers (joblib)")
    parser.add_argument("--seed", type=int, default=None, help="Override split.seed")
    parser.add_argument("--no-plots", action="store_true", help="Skip plotly HTML figures")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    print("🚀 Starting Pipeline...")

    try:
        config = load_config(args.config)
    except (FileNotFoundError, AnalysisError) as e:
        print(f"❌ CONFIG ERROR: {e}")
        return 1

    try:
        config.update(
            output_dir=args.output_dir,
            n_jobs=args.n_jobs,
            seed=args.seed,
            create_plots=False if args.no_plots else None,
        )
        AnalysisPipeline(config).run()
    except AnalysisError as e:
        print(f"❌ ANALYSIS ERROR: {e}")
        traceback.print_exc()
        return 1

    print("\n✅ Pipeline Finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
