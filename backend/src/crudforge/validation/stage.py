"""Request-body validation stage."""

from __future__ import annotations

from typing import Any

from crudforge.pipeline.types import RequestContext, StageFn
from crudforge.validation.types import ValidatorBackend


def validation_stage(backend: ValidatorBackend, artifact: Any) -> StageFn:
    """Stage replacing the request body with its validated, normalized form.

    Raises:
        ValueError: If *artifact* is not something *backend* validates with.
    """
    if not backend.accepts(artifact):
        raise ValueError(
            f"{type(artifact).__name__} is not a valid {backend.name} validation artifact"
        )

    def validate_body(ctx: RequestContext):
        ctx.request_body = backend.validate(artifact, ctx.request_body)
        return None

    return validate_body
