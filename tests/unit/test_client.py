"""Unit tests for the RenderService retry behavior."""

import pytest

from imaginator.contexts.queueing.exceptions import WorkerStoppedError
from imaginator.contexts.rendering.exceptions import ValidationError
from imaginator.contexts.service.client import RenderService
from imaginator.contexts.service.exceptions import WorkerUnreachableError


class ScriptedHandle:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = 0

    def enqueue(self, kind, code):
        self.calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class ScriptedLocator:
    """Hands out the given handles in order, recording invalidations."""

    def __init__(self, *handles):
        self.handles = list(handles)
        self.current = None
        self.invalidated = []

    def resolve(self):
        if self.current is None:
            self.current = self.handles.pop(0)
        return self.current

    def invalidate(self, handle):
        self.invalidated.append(handle)
        if self.current is handle:
            self.current = None


@pytest.mark.unit
@pytest.mark.parametrize("error", [WorkerStoppedError("closing"), WorkerUnreachableError("gone")])
def test_dead_handle_is_retried_once(error):
    dead, alive = ScriptedHandle(error), ScriptedHandle("abc.png")
    locator = ScriptedLocator(dead, alive)

    assert RenderService(locator=locator).enqueue("latex", "x") == "abc.png"

    assert locator.invalidated == [dead]
    assert (dead.calls, alive.calls) == (1, 1)


@pytest.mark.unit
def test_second_failure_propagates():
    locator = ScriptedLocator(ScriptedHandle(WorkerStoppedError("a")), ScriptedHandle(WorkerStoppedError("b")))

    with pytest.raises(WorkerStoppedError, match="b"):
        RenderService(locator=locator).enqueue("latex", "x")


@pytest.mark.unit
def test_request_errors_are_not_retried():
    handle = ScriptedHandle(ValidationError("Invalid LaTeX commands include", tokens=["include"]))
    locator = ScriptedLocator(handle)

    with pytest.raises(ValidationError):
        RenderService(locator=locator).enqueue("latex", r"\include{x}")

    assert locator.invalidated == []
    assert handle.calls == 1
