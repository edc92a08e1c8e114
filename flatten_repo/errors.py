"""
Exception taxonomy for flatten_repo.

Recoverable conditions (unreadable files, oversized entries, a broken rule
document) never raise out of the engine; they are reported and skipped.
Only the conditions below end a run.
"""


class FlattenError(Exception):
    """Base class for all flatten_repo errors."""


class RuleDocumentError(FlattenError):
    """A rule document could not be read or parsed.

    Raised internally by the reader and recovered by load_rule_set(),
    which falls back to built-in defaults.
    """


class FlattenCancelled(FlattenError):
    """The run was cancelled. Nothing is written."""


class BudgetAborted(FlattenError):
    """The budget policy chose not to continue the run."""


class EmptyResultError(FlattenError):
    """No candidate survived filtering, or no content could be read."""
