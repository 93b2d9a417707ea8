#!/usr/bin/env python3
"""Run the classifier and the dilation transform over every image of a folder."""
import argparse
import json
import logging
import sys

from batchvision.api import run_batch
from batchvision.errors import BatchVisionError
from batchvision.execution import ParallelConfig
from batchvision.profiles import config_from_profile, load_profile

logger = logging.getLogger("batchvision.cli")

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_JOBS_FAILED = 2


def main(argv=None):
    ap = argparse.ArgumentParser(description="Classify and dilate every image of a directory")
    ap.add_argument("--src", default=None, help="source directory (default: profile, then 'examples')")
    ap.add_argument("--out", "-o", default=None, help="destination directory (default: profile, then 'out')")
    ap.add_argument("--profile", default="default")
    ap.add_argument("--max-in-flight", type=int, default=None)
    ap.add_argument("--mock", action="store_true", help="use the deterministic mock classifier")
    ap.add_argument("--strict", action="store_true", help="exit with 2 when some jobs failed")
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    try:
        cfg = config_from_profile(load_profile(args.profile))
        if args.src:
            cfg.source_dir = args.src
        if args.out:
            cfg.dest_dir = args.out
        if args.max_in_flight is not None:
            par = dict(cfg.parallel.__dict__)
            par["max_in_flight_jobs"] = args.max_in_flight
            cfg.parallel = ParallelConfig(**par)
        if args.mock:
            cfg.params["classifier"] = {**(cfg.params.get("classifier") or {}), "mock": True}
        result = run_batch(cfg)
    except (BatchVisionError, FileNotFoundError, ValueError) as e:
        logger.error("batch aborted: %s", e)
        return EXIT_RUN_FAILED

    print(json.dumps(result.to_dict(), indent=2))
    if args.strict and not result.all_succeeded:
        return EXIT_JOBS_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
