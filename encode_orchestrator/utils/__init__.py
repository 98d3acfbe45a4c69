"""
Utilities Package for the Encode Orchestrator.

Pure helper modules, with no remote calls:

    - correlation_codec.py: Encodes correlation data into a task name and back.
    - asset_naming.py: Deterministic names for assets and jobs.
    - blob_uri.py: Takes blob URIs apart and puts them back together.
    - format_utils.py: Human-readable durations and sizes for log messages.
"""
