# run.py
import argparse
import sys

from src.orchestrator.orchestrator import Orchestrator
from src.utils.errors import SpecError


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run campaign analysis reports.")
    parser.add_argument(
        "reports",
        nargs="*",
        help="Report names to run (default: all). Example: overall_ctr top_locations_by_impressions"
    )
    parser.add_argument("--config", default="config/config.yaml")
    parser.add_argument("--data", default=None, help="Override the dataset path from the config")
    parser.add_argument("--workers", type=int, default=None, help="Parallel report workers (1 = sequential)")
    parser.add_argument("--list", action="store_true", help="List available reports and exit")
    args = parser.parse_args(argv)

    orchestrator = None
    try:
        orchestrator = Orchestrator(config_path=args.config, data_path=args.data, workers=args.workers)

        if args.list:
            for name, spec in orchestrator.catalog.items():
                print(f"{name:40s} {spec.title}")
            return 0

        out = orchestrator.run(args.reports or None)
        print("\nCompleted. Artifacts:", out)
    except SpecError as e:
        print("\n❌ Invalid report request:", str(e))
        return 2
    except Exception as e:
        print("\n❌ Analysis Failed:", str(e))
        return 1
    finally:
        if orchestrator is not None:
            orchestrator.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
