"""
Run the AI tutor regression suite

Replays the question / canned-response pairs of a QA file through the tutor
middleware and prints a pass/fail report.

Usage:
    python scripts/run_tutor_regression.py
    python scripts/run_tutor_regression.py --file tests/fixtures/tutor_questions.txt --verbose
"""

import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "studypals_tutor" / "src"))

from studypals_tutor.logger import get_logger, setup_logging
from studypals_tutor.middleware import AITutorMiddleware
from studypals_tutor.regression import RegressionRunner

DEFAULT_QA_FILE = project_root / "tests" / "fixtures" / "tutor_questions.txt"

log = get_logger("studypals_tutor.regression")


async def main(qa_file: Path, use_env: bool) -> int:
    middleware = AITutorMiddleware.from_env() if use_env else AITutorMiddleware()
    runner = RegressionRunner(middleware=middleware)

    try:
        report = await runner.run_file(qa_file)
    except FileNotFoundError as e:
        log.error("Cannot run regression suite", error=e)
        return 2

    log.section("Regression report", {
        "file": str(qa_file),
        "total": report.total,
        "passed": report.passed,
        "failed": report.failed,
        "pass_rate": f"{report.pass_rate * 100:.1f}%",
        "telemetry": report.telemetry,
    })
    for result in report.results:
        log.check(f"Q{result.case.question_number} {result.case.category}", "pass" if result.passed else "fail")
    print(report.summary())

    if report.failed:
        log.warning(f"{report.failed} regression cases failed")
        return 1
    log.success("All regression cases passed")
    return 0


if __name__ == "__main__":
    import asyncio
    import argparse

    parser = argparse.ArgumentParser(description="Replay tutor QA pairs through the response middleware")
    parser.add_argument(
        "--file",
        type=Path,
        default=DEFAULT_QA_FILE,
        help="QA text file to replay (default: tests/fixtures/tutor_questions.txt)"
    )
    parser.add_argument(
        "--env",
        action="store_true",
        help="Configure the middleware from TUTOR_* / SUPABASE_* environment variables"
    )
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")

    args = parser.parse_args()
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    sys.exit(asyncio.run(main(args.file, args.env)))
