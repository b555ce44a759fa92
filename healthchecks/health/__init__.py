"""Health subsystem — loopback resolver, prober, redirect follower, executor."""

from .engine import (
    AggregateResult,
    BodyMismatchError,
    CheckExecutor,
    Outcome,
    Reason,
    TooManyRedirectsError,
    aggregate,
    follow_redirects,
)
from .prober import ProbeTimeout, TransportError, probe
from .resolver import InvalidURL, RequestContext, resolve
