from __future__ import annotations

import json
import sys
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.models import FeedbackSource, FeedbackType, Sentence
from app.services.entries import (
    FeedbackEntry,
    canonicalize_type,
    dedupe_entries,
    dedupe_key,
    normalize_entries,
    parse_feedback_payload,
)


def _sentences() -> list[Sentence]:
    return [
        Sentence(id=1, paragraph=1, content="School uniforms reduce peer pressure."),
        Sentence(id=2, paragraph=1, content="Many parents support them."),
        Sentence(id=3, paragraph=2, content="Critics say uniforms limit expression."),
    ]


def _raw(sentence_id, content="Name which pressure you mean.", why="Vague nouns hide the claim.", **extra):
    item = {"content": content, "type": "Claim", "sentenceId": sentence_id, "sentenceText": "echo", "why": why}
    item.update(extra)
    return item


class CanonicalTypeTestCase(unittest.TestCase):
    def test_labels_canonicalize_case_and_whitespace_insensitively(self) -> None:
        self.assertEqual(canonicalize_type("word   USAGE"), FeedbackType.word_usage)
        self.assertEqual(canonicalize_type("  Orthography "), FeedbackType.orthography)
        self.assertEqual(canonicalize_type("word-usage"), FeedbackType.word_usage)
        self.assertEqual(canonicalize_type("REBUTTAL"), FeedbackType.rebuttal)

    def test_unknown_or_malformed_labels_become_others(self) -> None:
        for label in ("Grammar", "", None, 5, ["Claim"], "Claims"):
            self.assertEqual(canonicalize_type(label), FeedbackType.others)


class ParsePayloadTestCase(unittest.TestCase):
    def test_fenced_json_array(self) -> None:
        text = "```json\n" + json.dumps([_raw(1)]) + "\n```"
        parsed = parse_feedback_payload(text)
        self.assertGreaterEqual(len(parsed), 1)
        self.assertEqual(parsed[0]["sentenceId"], 1)

    def test_array_embedded_in_prose(self) -> None:
        text = "Here is the feedback you asked for:\n" + json.dumps([_raw(2)]) + "\nHope it helps."
        parsed = parse_feedback_payload(text)
        self.assertEqual(len(parsed), 1)
        self.assertEqual(parsed[0]["sentenceId"], 2)

    def test_both_parse_paths_are_unioned_and_dedupe_collapses_them(self) -> None:
        text = json.dumps([_raw(1)])
        parsed = parse_feedback_payload(text)
        self.assertEqual(len(parsed), 2)
        entries = dedupe_entries(normalize_entries(parsed, _sentences()))
        self.assertEqual(len(entries), 1)

    def test_malformed_payloads_yield_nothing(self) -> None:
        for text in (None, "", "not json at all", '{"content": "x"}', "[1, 2", "[{]"):
            self.assertEqual(parse_feedback_payload(text), [])

    def test_structurally_invalid_candidates_are_dropped(self) -> None:
        payload = [
            _raw(1),
            {"content": "Missing why", "sentenceId": 1},
            "a bare string",
            {"content": "Bad id", "why": "w", "sentenceId": True},
            {"content": 7, "why": "w", "sentenceId": 1},
        ]
        parsed = parse_feedback_payload("prefix " + json.dumps(payload))
        self.assertEqual(len(parsed), 1)
        self.assertEqual(parsed[0]["content"], "Name which pressure you mean.")


class NormalizeEntriesTestCase(unittest.TestCase):
    def test_out_of_range_and_non_integer_ids_are_rejected(self) -> None:
        raw = [_raw(0), _raw(4), _raw(2.5), _raw("abc"), _raw(None), _raw(True), _raw(-1)]
        self.assertEqual(normalize_entries(raw, _sentences()), [])

    def test_integral_floats_and_numeric_strings_are_accepted(self) -> None:
        entries = normalize_entries([_raw(3.0), _raw(" 2 ")], _sentences())
        self.assertEqual([entry.sentence_id for entry in entries], [3, 2])

    def test_blank_content_or_why_is_rejected(self) -> None:
        raw = [_raw(1, content="   "), _raw(1, why=""), _raw(1, why=None)]
        self.assertEqual(normalize_entries(raw, _sentences()), [])

    def test_sentence_text_is_overwritten_and_type_canonicalized(self) -> None:
        entries = normalize_entries([_raw(2, type="  EVIDENCE ")], _sentences())
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].sentence_text, "Many parents support them.")
        self.assertEqual(entries[0].type, FeedbackType.evidence)
        self.assertEqual(entries[0].source, FeedbackSource.service)

    def test_how_items_are_coerced(self) -> None:
        how = [{"title": "Cite", "strategy": "Add a survey figure."}, {"title": 3}, "skip me"]
        entries = normalize_entries([_raw(1, how=how)], _sentences())
        self.assertEqual(len(entries[0].how), 2)
        self.assertEqual(entries[0].how[0].title, "Cite")
        self.assertEqual(entries[0].how[1].title, "Improve")
        self.assertEqual(entries[0].how[1].strategy, "")


class DedupeTestCase(unittest.TestCase):
    def _entry(self, sentence_id: int, feedback_type: FeedbackType, content: str) -> FeedbackEntry:
        return FeedbackEntry(sentence_id=sentence_id, type=feedback_type, content=content, why="w")

    def test_key_uses_sentence_type_and_normalized_content(self) -> None:
        entry = self._entry(2, FeedbackType.word_usage, "  Use Precise Terms ")
        self.assertEqual(dedupe_key(entry), "2|Word Usage|use precise terms")

    def test_first_occurrence_wins_and_dedupe_is_idempotent(self) -> None:
        entries = [
            self._entry(1, FeedbackType.claim, "State the claim."),
            self._entry(1, FeedbackType.claim, "state the claim.  "),
            self._entry(1, FeedbackType.reasoning, "State the claim."),
            self._entry(2, FeedbackType.claim, "State the claim."),
        ]
        once = dedupe_entries(entries)
        self.assertEqual(len(once), 3)
        self.assertIs(once[0], entries[0])
        self.assertEqual(dedupe_entries(once), once)


if __name__ == "__main__":
    unittest.main()
