"""
Condition Evaluator - achievement unlock rules as data, not code.

A condition is a tiny language of comparisons joined by AND / OR:

    condition  := conjunct ( OR conjunct )*
    conjunct   := comparison ( AND comparison )*
    comparison := IDENTIFIER OPERATOR NUMBER
    OPERATOR   := >= | <= | > | < | == | !=

AND binds tighter than OR, so "a >= 1 OR b >= 1 AND c >= 1" means
"a >= 1 OR (b >= 1 AND c >= 1)". Keywords are case-insensitive.

Conditions are tokenized with a regular expression, parsed by recursive
descent and evaluated against a closed set of numeric variables. Nothing is
ever passed to eval/exec and no attribute lookup is done by name.

A malformed comparison (unknown variable, bad operator, non-numeric literal)
evaluates to False and is logged once per condition. It never raises.
"""

import logging
import operator
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# The variables a condition may mention
KNOWN_VARIABLES: FrozenSet[str] = frozenset({
    "pet_count",
    "feed_count",
    "play_count",
    "chat_count",
    "total_interactions",
    "total_days",
    "consecutive_days",
    "intimacy",
})

OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}

_TOKEN_RE = re.compile(
    r"""
    \s*
    (?:
        (?P<number>-?\d+(?:\.\d+)?(?![\w.]))
      | (?P<op>>=|<=|==|!=|>|<)
      | (?P<word>[A-Za-z_]\w*)
      | (?P<bad>\S)
    )
    """,
    re.VERBOSE,
)

_KEYWORDS = {"AND": "and", "OR": "or"}


@dataclass(frozen=True)
class Token:
    kind: str  # number, op, word, and, or, bad
    text: str


def tokenize(text: str) -> List[Token]:
    """Split a condition into tokens. Unrecognised characters become 'bad' tokens."""
    tokens = []
    text = text.strip()
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:  # Only trailing whitespace can get here
            break
        kind = match.lastgroup
        value = match.group(kind)
        if kind == "word" and value.upper() in _KEYWORDS:
            kind = _KEYWORDS[value.upper()]
        tokens.append(Token(kind, value))
        pos = match.end()
    return tokens


MISSING_COMPARISON = "missing comparison"


@dataclass(frozen=True)
class Comparison:
    """`identifier op value`, or a record of why it could not be parsed."""
    identifier: Optional[str] = None
    op: Optional[str] = None
    value: Optional[float] = None
    error: Optional[str] = None
    source: str = ""

    @property
    def is_valid(self) -> bool:
        return self.error is None

    def evaluate(self, context: Mapping[str, float]) -> bool:
        if self.error is not None or self.identifier not in context:
            return False
        return OPERATORS[self.op](context[self.identifier], self.value)


@dataclass(frozen=True)
class Condition:
    """Disjunction of conjunctions of comparisons."""
    source: str
    disjuncts: Tuple[Tuple[Comparison, ...], ...]

    def comparisons(self) -> Iterable[Comparison]:
        for conjunct in self.disjuncts:
            yield from conjunct

    @property
    def is_complete(self) -> bool:
        """False when an AND/OR has nothing on one side of it."""
        return all(c.error != MISSING_COMPARISON for c in self.comparisons())

    def evaluate(self, context: Mapping[str, float]) -> bool:
        if not self.is_complete:
            return False
        return any(
            all(comparison.evaluate(context) for comparison in conjunct)
            for conjunct in self.disjuncts
        )


def _build_comparison(parts: List[Token]) -> Comparison:
    source = " ".join(token.text for token in parts)
    if not parts:
        return Comparison(error=MISSING_COMPARISON, source=source)
    if parts[0].kind != "word":
        return Comparison(error=f"expected variable name, got '{parts[0].text}'", source=source)
    if len(parts) < 2 or parts[1].kind != "op":
        got = parts[1].text if len(parts) > 1 else "end of condition"
        return Comparison(error=f"expected operator after '{parts[0].text}', got '{got}'", source=source)
    if len(parts) < 3 or parts[2].kind != "number":
        got = parts[2].text if len(parts) > 2 else "end of condition"
        return Comparison(error=f"expected number after '{parts[1].text}', got '{got}'", source=source)
    if len(parts) > 3:
        trailing = " ".join(token.text for token in parts[3:])
        return Comparison(error=f"unexpected '{trailing}' after comparison", source=source)
    return Comparison(
        identifier=parts[0].text,
        op=parts[1].text,
        value=float(parts[2].text),
        source=source,
    )


class _Parser:
    """Recursive descent over the token list. Total: always returns a Condition."""

    def __init__(self, tokens: List[Token]):
        self._tokens = tokens
        self._pos = 0

    def _accept(self, kind: str) -> bool:
        if self._pos < len(self._tokens) and self._tokens[self._pos].kind == kind:
            self._pos += 1
            return True
        return False

    def parse_condition(self, source: str) -> Condition:
        disjuncts = [self._parse_conjunct()]
        while self._accept("or"):
            disjuncts.append(self._parse_conjunct())
        return Condition(source=source, disjuncts=tuple(disjuncts))

    def _parse_conjunct(self) -> Tuple[Comparison, ...]:
        comparisons = [self._parse_comparison()]
        while self._accept("and"):
            comparisons.append(self._parse_comparison())
        return tuple(comparisons)

    def _parse_comparison(self) -> Comparison:
        start = self._pos
        while (self._pos < len(self._tokens)
               and self._tokens[self._pos].kind not in ("and", "or")):
            self._pos += 1
        return _build_comparison(self._tokens[start:self._pos])


@lru_cache(maxsize=256)
def parse_condition(text: str) -> Condition:
    """Parse a condition string. Never raises; problems are kept on the comparisons."""
    return _Parser(tokenize(text)).parse_condition(text)


class ConditionEvaluator:
    """
    Evaluates conditions against a closed variable set.

    Problems in a given condition string are logged the first time it is
    seen and silently evaluate to False afterwards.
    """

    def __init__(self, variables: Iterable[str] = KNOWN_VARIABLES):
        self.variables: FrozenSet[str] = frozenset(variables)
        self._reported: Set[str] = set()

    def mark_reported(self, label: str) -> None:
        """Treat problems under `label` as already logged."""
        self._reported.add(label)

    def problems(self, condition: str) -> List[str]:
        """Everything wrong with a condition; empty list when it is well formed."""
        if not isinstance(condition, str):
            return [f"condition must be a string, got {type(condition).__name__}"]
        found = []
        for comparison in parse_condition(condition).comparisons():
            if comparison.error is not None:
                found.append(comparison.error)
            elif comparison.identifier not in self.variables:
                found.append(f"unknown variable '{comparison.identifier}'")
        return found

    def evaluate(
        self,
        condition: str,
        context: Mapping[str, float],
        label: Optional[str] = None,
    ) -> bool:
        """
        True when the condition holds for `context`.

        Variables outside the known set never match, even if the context
        happens to carry them.

        Args:
            condition: Condition text
            context: Variable values
            label: Name of the owning definition; problems are reported once
                   per label (or once per condition text when omitted)
        """
        problems = self.problems(condition)
        key = label or (condition if isinstance(condition, str) else repr(condition))
        if problems and key not in self._reported:
            self._reported.add(key)
            logger.warning(
                "Malformed condition %r%s: %s",
                condition,
                f" in '{label}'" if label else "",
                "; ".join(problems),
            )
        if not isinstance(condition, str):
            return False

        scoped = {name: value for name, value in context.items() if name in self.variables}
        return parse_condition(condition).evaluate(scoped)


_default_evaluator = ConditionEvaluator()


def evaluate_condition(condition: str, context: Mapping[str, float]) -> bool:
    """Evaluate with the shared evaluator over KNOWN_VARIABLES."""
    return _default_evaluator.evaluate(condition, context)


def check_condition(condition: str) -> List[str]:
    """Problems with a condition under KNOWN_VARIABLES (for catalog validation)."""
    return _default_evaluator.problems(condition)
