"""Filtering, ranking and truncation of analysis issues before publication."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .models import Issue, IssueType, Severity

logger = logging.getLogger(__name__)

IssuePredicate = Callable[[Issue], bool]


def _parse_names(text: Optional[str], choices: Iterable[str]) -> FrozenSet[str]:
    known = set(choices)
    tokens = (token.strip().upper() for token in (text or "").split(","))
    return frozenset(token for token in tokens if token in known)


def parse_severity_exclusions(text: Optional[str]) -> FrozenSet[Severity]:
    """Parse a comma separated list of severities such as ``"blocker, HIGH"``.

    Tokens are trimmed and matched case-insensitively; unknown tokens are
    dropped without error.
    """
    return frozenset(Severity[name] for name in _parse_names(text, Severity.__members__))


def parse_type_exclusions(text: Optional[str]) -> FrozenSet[IssueType]:
    """Parse a comma separated list of issue types such as ``"code_smell,bug"``."""
    return frozenset(IssueType[name] for name in _parse_names(text, IssueType.__members__))


@dataclass(frozen=True)
class SeverityExclusionFilter:
    """Keeps issues whose effective severity is not excluded."""

    excluded: FrozenSet[Severity]

    def __call__(self, issue: Issue) -> bool:
        return issue.severity not in self.excluded


@dataclass(frozen=True)
class TypeExclusionFilter:
    """Keeps issues whose type is not excluded."""

    excluded: FrozenSet[IssueType]

    def __call__(self, issue: Issue) -> bool:
        return issue.type not in self.excluded


def rank_by_severity(issue: Issue) -> int:
    return int(issue.severity)


def rank_by_type(issue: Issue) -> int:
    return int(issue.type)


@dataclass(frozen=True)
class SelectionPolicy:
    """Which issues to publish and in which order."""

    predicates: Tuple[IssuePredicate, ...] = ()
    severity_rank: Callable[[Issue], int] = field(default=rank_by_severity)
    type_rank: Callable[[Issue], int] = field(default=rank_by_type)
    max_issues: Optional[int] = None

    @property
    def truncates(self) -> bool:
        return self.max_issues is not None and self.max_issues > 0


def build_selection_policy(
    severity_exclusions: Optional[str] = None,
    type_exclusions: Optional[str] = None,
    max_issues: Optional[int] = None,
) -> SelectionPolicy:
    """Build a policy from the raw exclusion settings."""
    predicates: List[IssuePredicate] = []

    excluded_severities = parse_severity_exclusions(severity_exclusions)
    if excluded_severities:
        predicates.append(SeverityExclusionFilter(excluded_severities))

    excluded_types = parse_type_exclusions(type_exclusions)
    if excluded_types:
        predicates.append(TypeExclusionFilter(excluded_types))

    return SelectionPolicy(predicates=tuple(predicates), max_issues=max_issues)


def select_issues(issues: Sequence[Issue], policy: SelectionPolicy) -> List[Issue]:
    """Return the issues to publish, most severe first.

    Issues must satisfy every predicate of the policy. Survivors are ordered
    by severity rank descending, then type rank descending; ties keep their
    input order. When ``policy.max_issues`` is set and positive only that many are kept.

    Raises:
        ContractViolationError: If a retained issue carries no severity.
    """
    kept = [issue for issue in issues if all(predicate(issue) for predicate in policy.predicates)]
    ranked = sorted(kept, key=lambda issue: (-policy.severity_rank(issue), -policy.type_rank(issue)))

    if policy.truncates and len(ranked) > policy.max_issues:
        logger.info(
            "Truncating selected issues",
            extra={"selected": len(ranked), "max_issues": policy.max_issues},
        )
        ranked = ranked[: policy.max_issues]

    return ranked
