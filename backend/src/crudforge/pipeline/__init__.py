"""Per-route request pipelines."""

from crudforge.pipeline.types import Pipeline, PipelineShape, RequestContext, Stage

__all__ = ["Pipeline", "PipelineShape", "RequestContext", "Stage"]
