from __future__ import annotations

"""Task classification for the think phase.

A classifier turns the incoming user message into a short, ordered list of
plan steps. The coordinator records each step as a think-phase reasoning
step; the classifier itself never executes tools or touches session state.

Two implementations ship with the package:

- ``KeywordTaskClassifier``: deterministic keyword/category rules
  (create, modify, debug, setup) with a generic fallback.
- ``ModelTaskClassifier``: asks an LLM through Pydantic AI for the steps and
  falls back to the keyword rules when no model is configured or the model
  returns nothing.
"""

from dataclasses import dataclass
from typing import Any, List, Protocol, Sequence, Tuple

from pydantic_ai import Agent

from ..core.logging_config import get_logger

logger = get_logger(__name__)


class TaskClassifier(Protocol):
    """Protocol for think-phase task classifiers."""

    async def classify(self, message: str) -> List[str]: ...


@dataclass(frozen=True)
class KeywordRule:
    """Emit ``steps`` when the lower-cased message contains any of ``keywords``."""

    category: str
    keywords: Tuple[str, ...]
    steps: Tuple[str, ...]

    def matches(self, message: str) -> bool:
        return any(k in message for k in self.keywords)


DEFAULT_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule(
        category="create",
        keywords=("create", "add", "generate"),
        steps=(
            "User wants to create new files or features",
            "Need to check existing project structure first (listFiles)",
            "May need to read existing files to understand context (readFile)",
            "Then generate the new code (generateFiles)",
        ),
    ),
    KeywordRule(
        category="modify",
        keywords=("update", "modify", "change", "fix"),
        steps=(
            "User wants to modify existing code",
            "Need to read the files that need modification (readFile)",
            "Then update them with changes (generateFiles)",
        ),
    ),
    KeywordRule(
        category="debug",
        keywords=("error", "bug", "issue", "problem"),
        steps=(
            "User is reporting an issue",
            "Need to search for relevant code (searchCode)",
            "May need to check command output or logs",
        ),
    ),
    KeywordRule(
        category="setup",
        keywords=("install", "setup", "configure"),
        steps=(
            "User wants to install or configure something",
            "Need to check package.json or config files (readFile)",
            "May need to run installation commands (runCommand)",
        ),
    ),
)

FALLBACK_STEPS: Tuple[str, ...] = (
    "Analyzing user request...",
    "Will determine appropriate tools to use",
)


class KeywordTaskClassifier:
    """Deterministic classifier matching keyword categories in rule order.

    Every matching category contributes its steps, so "fix the install error"
    yields modify, debug and setup steps in that order.
    """

    def __init__(self, rules: Sequence[KeywordRule] = DEFAULT_RULES, fallback: Sequence[str] = FALLBACK_STEPS) -> None:
        self._rules = tuple(rules)
        self._fallback = tuple(fallback)

    def categories(self, message: str) -> List[str]:
        text = message.lower()
        return [r.category for r in self._rules if r.matches(text)]

    async def classify(self, message: str) -> List[str]:
        text = message.lower()
        steps: List[str] = []
        for rule in self._rules:
            if rule.matches(text):
                steps.extend(rule.steps)
        return steps or list(self._fallback)


class ModelTaskClassifier:
    """LLM-backed classifier built on Pydantic AI.

    - ``model=None``: always uses the keyword fallback. Useful for tests or
      deployments that want to avoid LLM calls.
    - ``model!=None``: runs a Pydantic AI agent with ``output_type=List[str]``.
      An empty answer also falls back to the keyword rules.
    """

    def __init__(self, *, model: Any | None = None, fallback: TaskClassifier | None = None) -> None:
        self._model = model
        self._fallback = fallback or KeywordTaskClassifier()

    async def classify(self, message: str) -> List[str]:
        if self._model is None:
            return await self._fallback.classify(message)

        agent: Agent = Agent(
            self._model,
            output_type=List[str],
            system_prompt=(
                "You are the planning step of an autonomous coding agent. "
                "Return a short ordered list of the reasoning steps needed to handle the request. "
                "Mention the tools you expect to use (listFiles, readFile, searchCode, generateFiles, runCommand)."
            ),
        )
        result = await agent.run(f"request={message}\n")
        steps = [str(s).strip() for s in result.output or [] if str(s).strip()]
        if not steps:
            logger.debug("Model classifier returned no steps, using keyword fallback")
            return await self._fallback.classify(message)
        return steps
