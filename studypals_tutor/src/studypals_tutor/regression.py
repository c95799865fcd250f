"""
Tutor regression harness.

Replays fixed question / canned-response pairs through AITutorMiddleware and
checks category-specific acceptance criteria against the post-processed
result. The QA file is plain text:

    <category>
    Question 1:
    <question text>
    AI Response 1:
    <one or more response lines>
    ------------------------------------------------
    <next category>
    ...
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from studypals_tutor.math_engine import MathEngine
from studypals_tutor.memory_claim_validator import MemoryClaimValidator
from studypals_tutor.middleware import AITutorMiddleware, PostProcessedResponse

logger = logging.getLogger(__name__)

_SECTION_SEPARATOR_RE = re.compile(r"^\s*-{10,}\s*$", re.MULTILINE)
_QUESTION_RE = re.compile(r"^Question\s+(\d+)\s*:?\s*$", re.IGNORECASE)
_RESPONSE_RE = re.compile(r"^AI Response\s+(\d+)\s*:?\s*$", re.IGNORECASE)

EMOTION_KEYWORDS = ("understand", "i see", "help", "know", "appreciate", "frustrat", "it's okay", "normal")
VISUAL_KEYWORDS = ("diagram", "chart", "visual", "picture", "draw", "sketch", "graph", "image")
STEP_KEYWORDS = ("step", "1.", "first")

_memory_validator = MemoryClaimValidator()
_math_engine = MathEngine()


def _no_false_memory(response: PostProcessedResponse) -> bool:
    # Every case runs for a fresh user, so no memory claim can be legitimate
    return not _memory_validator.find_claims(response.response)


def _asks_question(response: PostProcessedResponse) -> bool:
    return "?" in response.response


def _acknowledges_emotion(response: PostProcessedResponse) -> bool:
    lowered = response.response.lower()
    return any(keyword in lowered for keyword in EMOTION_KEYWORDS)


def _offers_visual(response: PostProcessedResponse) -> bool:
    lowered = response.response.lower()
    return any(keyword in lowered for keyword in VISUAL_KEYWORDS)


def _step_by_step(response: PostProcessedResponse) -> bool:
    lowered = response.response.lower()
    return any(keyword in lowered for keyword in STEP_KEYWORDS)


def _math_correct(response: PostProcessedResponse) -> bool:
    return _math_engine.validate_and_annotate(response.response).valid


@dataclass(frozen=True)
class AcceptanceCriterion:
    name: str
    description: str
    check: Callable[[PostProcessedResponse], bool]


CRITERIA: Dict[str, AcceptanceCriterion] = {
    c.name: c for c in (
        AcceptanceCriterion("no_false_memory", "MUST NOT assert prior discussion when none present", _no_false_memory),
        AcceptanceCriterion("asks_question", "Should ask if the user wants to discuss the topic", _asks_question),
        AcceptanceCriterion("acknowledges_emotion", "Should acknowledge user emotion", _acknowledges_emotion),
        AcceptanceCriterion("offers_visual", "Should offer visual examples or describe how to create them",
                            _offers_visual),
        AcceptanceCriterion("step_by_step", "Should provide step-by-step instructions", _step_by_step),
        AcceptanceCriterion("math_correct", "Final response must contain no wrong arithmetic", _math_correct),
    )
}

# Category keyword -> criteria applied to every case in that category
CATEGORY_CRITERIA: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("memory", ("no_false_memory", "asks_question")),
    ("personality", ("acknowledges_emotion",)),
    ("emotion", ("acknowledges_emotion",)),
    ("visual", ("offers_visual",)),
    ("step", ("step_by_step",)),
    ("math", ("math_correct",)),
)


def criteria_for_category(category: str) -> List[str]:
    lowered = category.lower()
    names: List[str] = []
    for keyword, criteria in CATEGORY_CRITERIA:
        if keyword in lowered:
            names.extend(name for name in criteria if name not in names)
    return names


@dataclass
class RegressionCase:
    """One question / canned response pair from the QA file."""
    question_number: int
    category: str
    question: str
    expected_response: str
    acceptance_criteria: List[str] = field(default_factory=list)


@dataclass
class RegressionResult:
    case: RegressionCase
    passed: bool
    failures: List[str] = field(default_factory=list)
    response: str = ""
    memory_valid: bool = False
    math_valid: bool = False
    corrections: List[str] = field(default_factory=list)


@dataclass
class RegressionReport:
    """Aggregated outcome of a regression run."""
    results: List[RegressionResult] = field(default_factory=list)
    telemetry: Dict[str, Any] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def pass_rate(self) -> float:
        return self.passed / self.total if self.total else 0.0

    def summary(self) -> str:
        lines = [
            "AI Tutor Regression Results",
            "=" * 50,
            f"Total: {self.total}",
            f"Passed: {self.passed}",
            f"Failed: {self.failed}",
            f"Pass Rate: {self.pass_rate * 100:.1f}%",
        ]
        failed = [r for r in self.results if not r.passed]
        if failed:
            lines.append("")
            lines.append("Failed Cases:")
            for result in failed:
                lines.append(f"  Q{result.case.question_number}: {result.case.category}")
                for failure in result.failures:
                    lines.append(f"    - {failure}")
        return "\n".join(lines)


def parse_regression_text(content: str) -> List[RegressionCase]:
    """Parse QA text into regression cases."""
    cases: List[RegressionCase] = []
    for section in _SECTION_SEPARATOR_RE.split(content):
        if section.strip():
            cases.extend(_parse_section(section.strip()))
    return cases


def parse_regression_file(path: Union[str, Path]) -> List[RegressionCase]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Regression file not found: {path}")
    return parse_regression_text(path.read_text(encoding="utf-8"))


def _parse_section(section: str) -> List[RegressionCase]:
    lines = [line.strip() for line in section.splitlines()]
    category = lines[0]
    criteria = criteria_for_category(category)

    cases: List[RegressionCase] = []
    number: Optional[int] = None
    question: Optional[str] = None
    response_lines: List[str] = []
    in_response = False

    def flush():
        if number is not None and question and response_lines:
            cases.append(RegressionCase(
                question_number=number,
                category=category,
                question=question,
                expected_response="\n".join(response_lines),
                acceptance_criteria=list(criteria),
            ))

    for line in lines[1:]:
        question_match = _QUESTION_RE.match(line)
        if question_match:
            flush()
            number = int(question_match.group(1))
            question = None
            response_lines = []
            in_response = False
        elif _RESPONSE_RE.match(line):
            in_response = True
        elif in_response:
            if not line:
                in_response = False
            else:
                response_lines.append(line)
        elif number is not None and question is None and line:
            question = line

    flush()
    return cases


class RegressionRunner:
    """Runs regression cases through the middleware."""

    def __init__(self, middleware: Optional[AITutorMiddleware] = None):
        self.middleware = middleware or AITutorMiddleware()

    async def run_case(self, case: RegressionCase) -> RegressionResult:
        slug = re.sub(r"[^a-z0-9]+", "_", case.category.lower()).strip("_")
        user_id = f"regression_{slug}_{case.question_number}"
        try:
            context = await self.middleware.pre_process_message(user_id, case.question)
            post = await self.middleware.post_process_response(
                user_id, case.question, case.expected_response, context=context
            )
        except Exception as e:
            logger.error(f"❌ [RegressionRunner] Q{case.question_number} raised: {e}", exc_info=True)
            return RegressionResult(case=case, passed=False, failures=[f"Execution error: {e}"])
        finally:
            self.middleware.clear_session(user_id)

        failures = []
        for name in case.acceptance_criteria:
            criterion = CRITERIA[name]
            if not criterion.check(post):
                failures.append(criterion.description)

        if failures:
            logger.warning(f"⚠️ [RegressionRunner] Q{case.question_number} failed {len(failures)} criteria")
        return RegressionResult(
            case=case,
            passed=not failures,
            failures=failures,
            response=post.response,
            memory_valid=post.memory_valid,
            math_valid=post.math_valid,
            corrections=list(post.corrections),
        )

    async def run_all(self, cases: List[RegressionCase]) -> RegressionReport:
        results = [await self.run_case(case) for case in cases]
        report = RegressionReport(results=results, telemetry=self.middleware.get_telemetry_summary())
        logger.info(f"🧪 [RegressionRunner] {report.passed}/{report.total} cases passed")
        return report

    async def run_file(self, path: Union[str, Path]) -> RegressionReport:
        return await self.run_all(parse_regression_file(path))
