"""Exception types shared by the upstream clients and the planner."""


class ShuttleRouteError(Exception):
    """Base class for errors raised by this package."""


class UpstreamError(ShuttleRouteError):
    """An upstream service was unreachable, timed out, or answered badly.

    Always recoverable: the caller degrades the affected candidate or query.
    """

    def __init__(self, service: str, detail: str):
        self.service = service
        self.detail = detail
        super().__init__(f"{service}: {detail}")


class InvalidPlanRequest(ShuttleRouteError):
    """The caller supplied unusable origin/destination input."""
