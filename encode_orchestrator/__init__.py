"""
This file marks the 'encode_orchestrator' directory as a Python package.

The package orchestrates encode jobs on a media services v2 account: it submits
jobs (`JobSubmitter`), reacts to their notifications (`NotificationProcessor`) and
manages reserved encoding capacity (`ReservedCapacityManager`). Applications
usually go through `encode_orchestrator.pipeline.EncodingPipeline`, which wires
these services to the REST and blob storage clients.
"""
