from __future__ import annotations

import logging
import re
from typing import Protocol

from matplotlib.mathtext import MathTextParser

from ..errors import NotationError
from ..models import FeedbackSource, FeedbackType, HowItem, Sentence
from .entries import FeedbackEntry
from .segmenter import extract_math_spans, unwrap_math_delimiters

logger = logging.getLogger(__name__)

NOTATION_FEEDBACK_CONTENT = (
    "This formula appears to have LaTeX syntax issues. "
    "Consider correcting command names, braces, or delimiters."
)
_NOTATION_HOW = (
    HowItem(
        title="Validate LaTeX syntax",
        strategy="Check unmatched braces, command spelling, and proper use of subscripts/superscripts.",
    ),
)


class NotationRenderer(Protocol):
    def render(self, expression: str, display_mode: bool = False) -> None: ...


_ENVIRONMENT = re.compile(r"\\begin\{([A-Za-z]+\*?)\}([\s\S]*?)\\end\{\1\}")
_ROW_OR_CELL = re.compile(r"\\\\|&")
_STYLE_COMMANDS = re.compile(r"\\(?:displaystyle|textstyle|scriptstyle|scriptscriptstyle|boxed)(?![A-Za-z])")
_FRAC_VARIANT = re.compile(r"\\[dt]frac(?![A-Za-z])")
_FRAC_BARE_ARGS = re.compile(r"\\frac\s*([A-Za-z0-9])\s*([A-Za-z0-9])")
_FRAC_BARE_NUMERATOR = re.compile(r"\\frac\s*([A-Za-z0-9])\s*\{")
_FRAC_BARE_DENOMINATOR = re.compile(r"\\frac(\{[^{}]*\})\s*([A-Za-z0-9])")
_COMMAND_SPELLINGS = {
    "le": r"\leq",
    "ge": r"\geq",
    "ne": r"\neq",
    "lvert": "|",
    "rvert": "|",
    "lVert": r"\Vert",
    "rVert": r"\Vert",
    "lbrace": r"\{",
    "rbrace": r"\}",
    "operatorname": r"\mathrm",
}
_ALIASED_COMMAND = re.compile(r"\\(" + "|".join(_COMMAND_SPELLINGS) + r")(?![A-Za-z])")


def to_mathtext_dialect(expression: str) -> str:
    """Rewrite KaTeX-valid constructs mathtext lacks into forms it parses.

    Matrix-like environments are flattened to their cells so the cell
    contents are still checked. An unbalanced ``\\begin`` is left in place
    and keeps failing.
    """
    relaxed = expression
    while True:
        flattened = _ENVIRONMENT.sub(lambda match: _ROW_OR_CELL.sub(" ", match.group(2)), relaxed)
        if flattened == relaxed:
            break
        relaxed = flattened
    relaxed = _STYLE_COMMANDS.sub(" ", relaxed)
    relaxed = _ALIASED_COMMAND.sub(lambda match: _COMMAND_SPELLINGS[match.group(1)], relaxed)
    relaxed = _FRAC_VARIANT.sub(r"\\frac", relaxed)
    relaxed = _FRAC_BARE_ARGS.sub(r"\\frac{\1}{\2}", relaxed)
    relaxed = _FRAC_BARE_NUMERATOR.sub(r"\\frac{\1}{", relaxed)
    relaxed = _FRAC_BARE_DENOMINATOR.sub(r"\\frac\1{\2}", relaxed)
    return relaxed


class MathTextRenderer:
    """Strict renderer backed by matplotlib's mathtext parser.

    mathtext has a single layout mode, so ``display_mode`` only exists for
    interface parity with browser-side renderers.
    """

    def __init__(self) -> None:
        self._parser = MathTextParser("path")

    def render(self, expression: str, display_mode: bool = False) -> None:
        try:
            self._parser.parse(f"${expression}$")
            return
        except ValueError as exc:
            first_error = exc

        relaxed = to_mathtext_dialect(expression)
        if relaxed != expression:
            try:
                self._parser.parse(f"${relaxed}$")
                return
            except ValueError:
                logger.debug("mathtext rejected %r after dialect rewrite", expression)

        message = " ".join(str(first_error).split()) or "LaTeX syntax may be invalid."
        raise NotationError(message) from first_error


def build_notation_feedback(
    sentences: list[Sentence],
    renderer: NotationRenderer | None = None,
) -> list[FeedbackEntry]:
    renderer = renderer or MathTextRenderer()
    entries: list[FeedbackEntry] = []
    for sentence in sentences:
        for span in extract_math_spans(sentence.content):
            expression = unwrap_math_delimiters(span)
            if not expression:
                continue
            try:
                renderer.render(expression, display_mode=False)
            except NotationError as exc:
                logger.debug("Notation check failed for sentence %s: %s", sentence.id, exc)
                entries.append(
                    FeedbackEntry(
                        sentence_id=sentence.id,
                        type=FeedbackType.others,
                        content=NOTATION_FEEDBACK_CONTENT,
                        why=(
                            "Invalid formula syntax can break rendering and reduce readability. "
                            f"Parser hint: {exc}"
                        ),
                        how=_NOTATION_HOW,
                        sentence_text=sentence.content,
                        source=FeedbackSource.notation,
                    )
                )
    return entries
