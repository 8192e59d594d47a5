"""
Error and warning types raised by the forecasting pipeline.
"""


class ForecastError(Exception):
    """Base class for errors raised while building a forecast."""


class InsufficientDataError(ForecastError):
    """A site has too few paired rows (or no driver rows) to fit or forecast."""

    def __init__(self, site_id, n_rows, min_rows=2, detail=None):
        self.site_id = site_id
        self.n_rows = n_rows
        self.min_rows = min_rows
        message = detail or (
            f"site {site_id!r} has {n_rows} valid paired rows; "
            f"at least {min_rows} required"
        )
        super().__init__(message)


class SchemaMismatchError(ForecastError):
    """A table is missing required columns or violates the submission format."""

    def __init__(self, message, missing_columns=None, problems=None):
        self.missing_columns = list(missing_columns or [])
        self.problems = list(problems or [])
        super().__init__(message)


class MemberSetMismatchWarning(UserWarning):
    """Ensemble member sets differ between datetimes of the same site."""
