"""
Command-line interface for the batch jobs.

Exit status is 0 when a command completes and 1 when it is misconfigured or
its preconditions are not met.
"""
import argparse
import logging
import sys
from typing import Optional

from newsfeed import commands
from newsfeed.classifier import classifier
from newsfeed.config import CLASSIFICATIONS
from newsfeed.database import Base, SessionLocal, engine
from newsfeed.exceptions import ConfigurationError, PreconditionError
from newsfeed.summarizer import DeepSeekService

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="newsfeed", description="Fetch, classify and summarize issue-focused news")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("fetch", help="Fetch and process articles from RSS feeds")

    summarize = subparsers.add_parser("summarize", help="Generate annotated summaries and keywords")
    summarize.add_argument("--classification", help=f"Only this classification ({', '.join(CLASSIFICATIONS)})")

    subparsers.add_parser("rebalance", help="Retrain the classifier on a class-balanced sample of stored articles")
    subparsers.add_parser("update-classifier", help="Feed stored keywords into the classifier")

    import_training = subparsers.add_parser("import-training", help="Import initial training data into the classifier brain")
    import_training.add_argument("file", nargs="?", help="Path to an initial training JSON file")

    subparsers.add_parser("cleanup", help="Remove expired articles")
    return parser.parse_args(argv)


def run_command(args: argparse.Namespace) -> commands.CommandResult:
    if args.command == "import-training":
        return commands.import_initial_training(classifier, args.file)

    db = SessionLocal()
    try:
        if args.command == "fetch":
            return commands.fetch_articles(db, classifier)
        if args.command == "summarize":
            if args.classification:
                commands.validate_classification(args.classification)
            return commands.generate_summaries(db, classifier, DeepSeekService(), args.classification)
        if args.command == "rebalance":
            return commands.rebalance_classifier(db, classifier)
        if args.command == "update-classifier":
            return commands.update_classifier(db, classifier)
        if args.command == "cleanup":
            return commands.cleanup_articles(db)
        raise ConfigurationError(f"Unknown command: {args.command}")
    finally:
        db.close()


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args(argv)
    Base.metadata.create_all(bind=engine)

    try:
        result = run_command(args)
    except (ConfigurationError, PreconditionError) as e:
        logger.error(str(e))
        return EXIT_FAILURE

    logger.info(result.message)
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
