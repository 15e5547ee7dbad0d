"""Reconciliation of decorator-owned discussions on GitLab and Azure DevOps.

Both platforms model feedback as discussions (threads) holding notes. The
first note of every discussion this tool opens ends with a marker link that
names the project and the issue, or the summary. On each run:

* issue discussions whose issue is no longer reported are resolved,
* issues that already have an open discussion are not commented again,
* a fresh summary discussion is opened and older summaries for the same
  project are deleted.

When another user has replied in a discussion it is never resolved or
deleted; a closing note asks for manual resolution instead.
"""

from __future__ import annotations

import abc
import logging
from typing import Generic, List, Optional, Set, TypeVar

from .decorator import PullRequestDecorator
from .formatting import CommentMarker, parse_marker
from .models import AnalysisResult, Issue

logger = logging.getLogger(__name__)

D = TypeVar("D")
N = TypeVar("N")

RESOLVED_ISSUE_NEEDING_CLOSED_MESSAGE = (
    "This issue no longer exists in SonarQube, but due to other comments being present in this "
    "discussion, the discussion is not being closed automatically. Please manually resolve this "
    "discussion once the other comments have been reviewed."
)
RESOLVED_SUMMARY_NEEDING_CLOSED_MESSAGE = (
    "This summary note is outdated, but due to other comments being present in this discussion, "
    "the discussion is not being removed. Please manually resolve this discussion once the other "
    "comments have been reviewed."
)
_FINAL_MESSAGES = (RESOLVED_ISSUE_NEEDING_CLOSED_MESSAGE, RESOLVED_SUMMARY_NEEDING_CLOSED_MESSAGE)


class DiscussionAwareDecorator(PullRequestDecorator, Generic[D, N]):
    """Decorator for platforms that publish findings as discussions."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._commented_issue_keys: Set[str] = set()

    # platform adapters

    @abc.abstractmethod
    def list_discussions(self) -> List[D]:
        ...

    @abc.abstractmethod
    def discussion_id(self, discussion: D) -> str:
        ...

    @abc.abstractmethod
    def discussion_notes(self, discussion: D) -> List[N]:
        ...

    @abc.abstractmethod
    def is_closed(self, discussion: D) -> bool:
        ...

    @abc.abstractmethod
    def note_body(self, note: N) -> str:
        ...

    @abc.abstractmethod
    def is_own_note(self, note: N) -> bool:
        """True when the note was written by the identity this run acts as."""

    @abc.abstractmethod
    def is_user_note(self, note: N) -> bool:
        """True for notes typed by a person, False for system events."""

    @abc.abstractmethod
    def add_note(self, discussion: D, body: str) -> None:
        ...

    @abc.abstractmethod
    def resolve_discussion(self, discussion: D) -> None:
        ...

    @abc.abstractmethod
    def delete_discussion(self, discussion: D) -> None:
        ...

    @abc.abstractmethod
    def create_issue_discussion(self, analysis: AnalysisResult, issue: Issue, body: str) -> None:
        ...

    @abc.abstractmethod
    def create_summary_discussion(self, analysis: AnalysisResult, body: str) -> str:
        """Open the summary discussion and return its id."""

    @abc.abstractmethod
    def submit_status(self, analysis: AnalysisResult) -> None:
        ...

    # reconciliation

    def _own_marker(self, discussion: D, project_key: str) -> Optional[CommentMarker]:
        notes = self.discussion_notes(discussion)
        if not notes or not self.is_own_note(notes[0]):
            return None
        marker = parse_marker(self.note_body(notes[0]))
        if marker is None or marker.project_key != project_key:
            return None
        return marker

    def _has_foreign_replies(self, discussion: D) -> bool:
        return any(self.is_user_note(note) and not self.is_own_note(note) for note in self.discussion_notes(discussion))

    def _has_final_note(self, discussion: D) -> bool:
        return any(
            self.is_own_note(note) and self.note_body(note) in _FINAL_MESSAGES
            for note in self.discussion_notes(discussion)
        )

    def cleanup(self, analysis: AnalysisResult) -> None:
        """Resolve own issue discussions whose issue is no longer reported."""
        reported_keys = {issue.key for issue in analysis.issues}
        self._commented_issue_keys = set()

        for discussion in self.list_discussions():
            marker = self._own_marker(discussion, analysis.project_key)
            if marker is None or marker.is_summary:
                continue
            if self.is_closed(discussion) or self._has_final_note(discussion):
                continue

            if marker.issue_key in reported_keys:
                self._commented_issue_keys.add(marker.issue_key)
            elif self._has_foreign_replies(discussion):
                self.add_note(discussion, RESOLVED_ISSUE_NEEDING_CLOSED_MESSAGE)
            else:
                logger.debug("Resolving outdated issue discussion", extra={"issue_key": marker.issue_key})
                self.resolve_discussion(discussion)

    def publish(self, analysis: AnalysisResult, selected: List[Issue]) -> None:
        """Open a line discussion per new issue, then publish the status."""
        pending = [
            issue
            for issue in selected
            if issue.key not in self._commented_issue_keys and issue.path and issue.line is not None
        ]

        def upload(_index: int, batch: List[Issue]) -> None:
            for issue in batch:
                self.create_issue_discussion(analysis, issue, self._formatter.format_issue(issue, analysis))

        created = self.upload_in_batches(pending, upload)
        logger.info(
            "Opened issue discussions",
            extra={"created": created, "already_open": len(self._commented_issue_keys)},
        )
        self.submit_status(analysis)

    def reconcile_summary(self, analysis: AnalysisResult) -> None:
        """Open a new summary discussion and retire older ones for this project."""
        summary_id = self.create_summary_discussion(analysis, self._formatter.format_summary(analysis))

        for discussion in self.list_discussions():
            if self.discussion_id(discussion) == summary_id:
                continue
            marker = self._own_marker(discussion, analysis.project_key)
            if marker is None or not marker.is_summary or self._has_final_note(discussion):
                continue

            if self._has_foreign_replies(discussion):
                self.add_note(discussion, RESOLVED_SUMMARY_NEEDING_CLOSED_MESSAGE)
            else:
                logger.debug("Deleting outdated summary discussion", extra={"discussion_id": self.discussion_id(discussion)})
                self.delete_discussion(discussion)
