"""Provides a small parser for basic graph patterns written in a SPARQL-like triple syntax.

The accepted syntax is deliberately simple: each triple pattern consists of three whitespace-separated terms and triple
patterns are separated by line breaks and/or a `` .`` token. Variables start with a question mark, IRIs can be written
in angle brackets or as prefixed names and literals use double quotes (optionally with a language tag or datatype).
Lines starting with ``#`` are ignored. If the text contains a group in curly braces (e.g. a complete
``SELECT * WHERE { ... }`` query), only the contents of the outermost group are parsed.
"""
from __future__ import annotations

import re

from ._core import BasicPattern, Term, TriplePattern, Variable

_NameToken = r"[^\s.]+(?:\.[^\s.]+)*"
_TokenPattern = re.compile(rf'<[^>]*>|"(?:[^"\\]|\\.)*"(?:@[\w-]+|\^\^(?:<[^>]*>|{_NameToken}))?|{_NameToken}|\.')
"""Splits a line into IRIs, literals, names and the separating dots. A dot that ends a name is a separate token."""


class PatternParsingError(ValueError):
    """Error to indicate that a pattern text could not be parsed.

    Parameters
    ----------
    text : str
        The text (or the part of it) that could not be parsed
    message : str, optional
        A message containing more details about the specific error. Defaults to an empty string.
    """

    def __init__(self, text: str, message: str = "") -> None:
        super().__init__(f"Cannot parse pattern '{text}'" if not message else f"{message}: '{text}'")
        self.text = text


def parse_term(token: str) -> Term:
    """Transforms a single token into a term. Tokens starting with ``?`` or ``$`` become variables."""
    if token[0] in "?$":
        if len(token) == 1:
            raise PatternParsingError(token, "Variables require a name")
        return Variable(token[1:])
    return token


def _strip_group(text: str) -> str:
    if "{" not in text:
        return text
    start, end = text.find("{"), text.rfind("}")
    if end < start:
        raise PatternParsingError(text, "Unbalanced group")
    return text[start + 1:end]


def parse_pattern(text: str) -> BasicPattern:
    """Parses the given text into a basic graph pattern.

    Parameters
    ----------
    text : str
        The pattern text. See the module documentation for the supported syntax.

    Returns
    -------
    BasicPattern
        The triple patterns in the order in which they appear in the text

    Raises
    ------
    PatternParsingError
        If a triple pattern does not consist of exactly three terms, or if the text does not contain any triple patterns at
        all
    """
    fragments: list[TriplePattern] = []
    for line in _strip_group(text).splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        current: list[str] = []
        for token in _TokenPattern.findall(line) + ["."]:
            if token != ".":
                current.append(token)
                continue
            if not current:
                continue
            if len(current) != 3:
                raise PatternParsingError(" ".join(current), "Triple patterns require exactly three terms")
            subject, predicate, obj = (parse_term(token) for token in current)
            fragments.append(TriplePattern(subject, predicate, obj))
            current = []

    if not fragments:
        raise PatternParsingError(text, "No triple patterns found")
    return BasicPattern(fragments)
