from __future__ import annotations
import re
from collections import Counter
from typing import List

STOP_WORDS = frozenset({
	"a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "how", "in", "is", "it", "of", "on",
	"or", "that", "the", "their", "to", "was", "what", "when", "where", "why", "with", "we", "you", "your",
	"our", "this", "these", "those", "i", "he", "she", "they", "them",
})

_TOKEN_RE = re.compile(r"[^\W_]+")
_SENTENCE_RE = re.compile(r"[.!?\r\n]+")


def normalize_whitespace(text: str) -> str:
	return " ".join((text or "").split())


def extract_keywords(text: str, take: int) -> List[str]:
	"""Most frequent non-stop-word tokens of three or more characters."""
	if not text or not text.strip():
		return []
	counts = Counter(
		token
		for token in (t.lower() for t in _TOKEN_RE.findall(text))
		if len(token) >= 3 and token not in STOP_WORDS
	)
	ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
	return [word for word, _ in ordered[: max(1, take)]]


def split_sentences(text: str) -> List[str]:
	if not text or not text.strip():
		return []
	parts = (normalize_whitespace(p) for p in _SENTENCE_RE.split(text))
	return [p for p in parts if p]


def count_words(text: str) -> int:
	return len((text or "").split())


def trim_to_word_budget(text: str, remaining: int) -> str:
	if remaining <= 0:
		return ""
	words = text.split()
	if len(words) <= remaining:
		return text
	return " ".join(words[:remaining]) + " …"
