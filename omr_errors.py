"""Error kinds raised by the OMR geometry, detector and grader."""

from __future__ import annotations


class OMRError(Exception):
    """Base class for every failure surfaced to the caller."""


class ConfigurationError(OMRError):
    """Invalid question count, sheet geometry or answer key shape."""


class InputUnavailable(OMRError):
    """The pixel buffer could not be produced (missing or undecodable image)."""


class IncompleteAnswerKey(OMRError):
    """One or more answer key entries are unset; grading is refused."""

    def __init__(self, missing_questions):
        self.missing_questions = list(missing_questions)
        listed = ", ".join(str(q) for q in self.missing_questions[:10])
        if len(self.missing_questions) > 10:
            listed += ", ..."
        super().__init__(
            f"Answer key is incomplete: no answer set for question(s) {listed}"
        )
