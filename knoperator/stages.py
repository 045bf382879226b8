"""Sequential reconcile stages that each act on a manifest."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

M = TypeVar("M")

Stage = Callable[[Any, Any], Any]


class Stages(list):
    """An ordered list of stages.

    A stage is called as ``stage(manifest, instance)`` and returns the manifest
    handed to the next stage; returning ``None`` leaves the manifest unchanged.
    A stage signals failure by raising, which stops the sequence.
    """

    def execute(self, manifest: M, instance: Any) -> M:
        """Run every stage in order and return the resulting manifest."""
        for stage in self:
            result = stage(manifest, instance)
            if result is not None:
                manifest = result
        return manifest


def no_op(manifest: M, instance: Any) -> M:
    """A stage that leaves the manifest as it is, like an empty sequence of stages."""
    return Stages().execute(manifest, instance)