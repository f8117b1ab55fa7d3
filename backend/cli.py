# Command-line trigger for the summary pipeline (cron or manual use)
import argparse
import logging
import sys

import config
import notifications  # noqa: F401  subscribes the fan-out to summary_created
from db import Base, engine, SessionLocal
from jobs import run_summary_pipeline


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="process-summaries",
        description="Process completed surveys and generate AI summaries.",
    )
    p.add_argument("--survey-id", type=int, default=None, help="Process a specific survey by ID")
    p.add_argument("--force", action="store_true", help="Re-process surveys that already have a summary")
    p.add_argument("--batch-size", type=int, default=config.SUMMARY_BATCH_SIZE,
                   help="Number of surveys to process in each batch")
    return p

def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)

    print("Starting survey summary processing...")
    db = SessionLocal()
    try:
        report = run_summary_pipeline(db, survey_id=args.survey_id, force=args.force, batch_size=args.batch_size)
    finally:
        db.close()

    if report.surveys_found:
        print(f"Found {report.surveys_found} survey(s) to process.")
    for batch in report.batches:
        print(f"Dispatched {batch.name} ({batch.number}/{report.batches_dispatched}): {len(batch.survey_ids)} survey(s)")
    print(report.message)
    return 0 if report.ok else 1

if __name__ == "__main__":
    sys.exit(main())
