import warnings
from dataclasses import dataclass


class InvalidInput(ValueError):
    """
    raised at the call boundary when the data can not be used: negative values, misaligned similarity matrices,
    unknown species names or estimator names
    """


class DegenerateSampleWarning(UserWarning):
    """
    the sample is degenerate (no species, only singletons, zero coverage). The affected value is NaN
    """


class EstimatorFallbackWarning(UserWarning):
    """
    the requested estimator could not be applied and a substitute was used instead
    """


class NegativeEntropyWarning(UserWarning):
    """
    a bias-corrected entropy is below zero. The value is returned as is
    """


NOTICE_KINDS = {
    DegenerateSampleWarning: "DegenerateSample",
    EstimatorFallbackWarning: "EstimatorFallback",
    NegativeEntropyWarning: "NegativeEntropy",
}


@dataclass(frozen=True)
class Notice:
    kind: str
    message: str

    def __str__(self):
        return self.kind + ": " + self.message


def to_notices(caught: list) -> tuple:
    """
    converts warnings captured with warnings.catch_warnings(record=True) to notices, dropping duplicates
    :param caught: the captured warning messages
    :return: a tuple of notices
    """
    notices = []
    for w in caught:
        kind = NOTICE_KINDS.get(w.category)
        if kind is None:
            # not one of ours, let it through
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
            continue
        notice = Notice(kind, str(w.message))
        if notice not in notices:
            notices.append(notice)
    return tuple(notices)


def degenerate(message: str) -> None:
    warnings.warn(message, DegenerateSampleWarning, stacklevel=3)


def fallback(message: str) -> None:
    warnings.warn(message, EstimatorFallbackWarning, stacklevel=3)


CATEGORIES = {kind: category for category, kind in NOTICE_KINDS.items()}


def replay(notices: tuple) -> None:
    """
    emits again the diagnostics of a memoized computation
    """
    for notice in notices:
        warnings.warn(notice.message, CATEGORIES[notice.kind], stacklevel=3)


def negative(message: str) -> None:
    warnings.warn(message, NegativeEntropyWarning, stacklevel=3)


def recorded(func, *args, **kwargs) -> tuple:
    """
    calls func and captures the diagnostics it emits.
    warnings.catch_warnings is not thread-safe: only one call may record at a time in a process
    :return: the result of func and the tuple of notices
    """
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = func(*args, **kwargs)
    return result, to_notices(caught)
