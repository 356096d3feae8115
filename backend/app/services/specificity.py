from __future__ import annotations

import re
from dataclasses import dataclass, field, replace

from ..models import FeedbackType, HowItem, Sentence
from .entries import FeedbackEntry

SNIPPET_MAX_CHARS = 96

GENERIC_FEEDBACK_PHRASES = (
    "consider tightening wording",
    "check punctuation, capitalization, and grammar",
    "strengthen the transition",
    "add more concrete support",
    "clarify the main claim",
    "explain the reasoning step more explicitly",
    "improve clarity, persuasiveness, and coherence",
)

_NOTATION_HINT = re.compile(r"\\\[|\\\]|\\\(|\\\)|\$\$|\$|\\[a-zA-Z]+\{")
_NON_WORD = re.compile(r"[^a-z0-9\s-]")
_KEY_PHRASE_STOPWORDS = frozenset(
    {
        "this", "that", "with", "from", "into", "because", "therefore", "which",
        "their", "about", "should", "could", "would", "being", "where", "while",
        "when", "have", "has", "been", "were", "your", "more", "than",
    }
)


@dataclass(frozen=True)
class SpecificFeedback:
    content: str
    why: str
    how: tuple[HowItem, ...]


@dataclass
class SpecificityTracker:
    used_by_type: dict[FeedbackType, set[str]] = field(default_factory=dict)

    def is_used(self, feedback_type: FeedbackType, content: str) -> bool:
        return _norm(content) in self.used_by_type.get(feedback_type, set())

    def mark_used(self, feedback_type: FeedbackType, content: str) -> None:
        self.used_by_type.setdefault(feedback_type, set()).add(_norm(content))


def _norm(content: str) -> str:
    return content.strip().lower()


def is_generic_content(content: str) -> bool:
    normalized = _norm(content)
    if not normalized:
        return True
    return any(phrase in normalized for phrase in GENERIC_FEEDBACK_PHRASES)


def sentence_snippet(text: str) -> str:
    cleaned = " ".join(text.split())
    if not cleaned:
        return "this sentence"
    # Truncating would cut math delimiters apart.
    if _NOTATION_HINT.search(cleaned):
        return cleaned
    if len(cleaned) > SNIPPET_MAX_CHARS:
        return f"{cleaned[: SNIPPET_MAX_CHARS - 3]}..."
    return cleaned


def key_phrases(text: str, limit: int = 3) -> list[str]:
    words = _NON_WORD.sub(" ", text.lower()).split()
    phrases: list[str] = []
    for word in words:
        if len(word) < 4 or word in _KEY_PHRASE_STOPWORDS or word in phrases:
            continue
        phrases.append(word)
        if len(phrases) >= limit:
            break
    return phrases


def _how(title: str, strategy: str) -> tuple[HowItem, ...]:
    return (HowItem(title=title, strategy=strategy),)


def build_specific_feedback(feedback_type: FeedbackType, sentence: Sentence) -> SpecificFeedback:
    snippet = sentence_snippet(sentence.content)
    phrases = key_phrases(sentence.content)
    focus = f" (focus: {', '.join(phrases)})" if phrases else ""

    if feedback_type is FeedbackType.word_usage:
        return SpecificFeedback(
            content=(
                f'In "{snippet}", replace broad wording with more precise terms and avoid stacked '
                f"abstractions so the point is easier to interpret.{focus}"
            ),
            why="Precise wording at the sentence level keeps readers from guessing your intended meaning.",
            how=_how("Tighten wording", "Swap one vague phrase for a concrete term and keep one main idea per clause."),
        )
    if feedback_type is FeedbackType.orthography:
        return SpecificFeedback(
            content=(
                f'This sentence has high punctuation complexity: "{snippet}". Simplify punctuation '
                f"boundaries so each clause has an unambiguous subject-verb unit.{focus}"
            ),
            why="Cleaner punctuation and grammar reduce processing load and improve readability.",
            how=_how(
                "Fix mechanics",
                "Split long clauses or re-punctuate to remove comma splices and ambiguous attachments.",
            ),
        )
    if feedback_type is FeedbackType.organization:
        return SpecificFeedback(
            content=(
                f'The transition around "{snippet}" is weak. Add a linking phrase that states how this '
                f"sentence extends or contrasts the previous point.{focus}"
            ),
            why="Explicit transitions improve paragraph flow and keep the argument structure visible.",
            how=_how(
                "Add transition logic",
                "Open the sentence with a connector that names its role: continuation, contrast, or consequence.",
            ),
        )
    if feedback_type is FeedbackType.evidence:
        return SpecificFeedback(
            content=(
                f'The claim in "{snippet}" needs concrete support. Add one specific example, figure, '
                f"or citation tied directly to this sentence.{focus}"
            ),
            why="Evidence anchored to the sentence strengthens credibility and reduces overgeneralization.",
            how=_how("Attach evidence", "Insert one verifiable fact and state how it supports this sentence."),
        )
    if feedback_type is FeedbackType.claim:
        return SpecificFeedback(
            content=(
                f'The stance in "{snippet}" is still implicit. Rewrite the sentence so the core claim '
                f"and its scope are explicit in one line.{focus}"
            ),
            why="A direct, bounded claim helps readers track your position across the paragraph.",
            how=_how(
                "Make claim explicit",
                "Use one assertion verb and name exactly what is argued and under what condition.",
            ),
        )
    if feedback_type is FeedbackType.rebuttal:
        return SpecificFeedback(
            content=(
                f'For "{snippet}", include a stronger counterpoint or limitation before returning to '
                f"your main position.{focus}"
            ),
            why="A developed rebuttal shows you can handle alternative readings instead of skipping them.",
            how=_how("Develop rebuttal", "State one plausible objection, then answer it with a reason or evidence."),
        )
    if feedback_type is FeedbackType.reasoning:
        return SpecificFeedback(
            content=(
                f'The logical step in "{snippet}" is compressed. Add one explicit inferential link '
                f"showing how the premise leads to the conclusion.{focus}"
            ),
            why="Explicit reasoning removes hidden jumps and makes the argument testable.",
            how=_how("Expose logic", "Insert a because/therefore bridge that names the causal or deductive relation."),
        )
    return SpecificFeedback(
        content=f'In "{snippet}", make the sentence purpose explicit and tie it to the paragraph goal.{focus}',
        why="Sentence-specific revision increases coherence and interpretability.",
        how=_how("Clarify intent", "Revise the sentence so its function and contribution are immediately visible."),
    )


def enforce_sentence_specificity(
    entries: list[FeedbackEntry],
    sentences: list[Sentence],
    tracker: SpecificityTracker,
) -> list[FeedbackEntry]:
    sentence_by_id = {sentence.id: sentence for sentence in sentences}
    enforced: list[FeedbackEntry] = []
    for entry in entries:
        sentence = sentence_by_id.get(entry.sentence_id)
        if sentence is None:
            continue
        if is_generic_content(entry.content) or tracker.is_used(entry.type, entry.content):
            specific = build_specific_feedback(entry.type, sentence)
            entry = replace(entry, content=specific.content, why=specific.why, how=specific.how)
        entry = replace(entry, sentence_text=sentence.content)
        tracker.mark_used(entry.type, entry.content)
        enforced.append(entry)
    return enforced
