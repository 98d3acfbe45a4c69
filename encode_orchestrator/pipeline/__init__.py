"""
This package wires the orchestrator together.

`EncodingPipeline` builds the REST client, the blob store and the preset resolver
from the settings once, and exposes the submit / notify / monitor / capacity
operations on top of them.
"""
from .encoding_pipeline import EncodingPipeline

__all__ = ["EncodingPipeline"]
