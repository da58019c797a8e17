"""Errors raised by the heatmap engine and its collaborators."""


class HeatmapError(Exception):
    """Base class for heatmap errors."""


class InvalidQuery(HeatmapError):
    """A viewport query is malformed (bad bounding box or zoom)."""


class ReportSourceUnavailable(HeatmapError):
    """The report store could not be queried.

    Recoverable: the coordinator keeps its timers armed and the next
    natural trigger retries the fetch.
    """
