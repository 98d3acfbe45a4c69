"""
This package contains the core domain models of the Encode Orchestrator.

The domain layer describes jobs, assets, notifications and capacity as the
orchestrator sees them, independent of the REST API and storage that carry them.

Modules:
    exceptions.py: The exception taxonomy, rooted at `EncodeOrchestratorException`.
    models.py: Job and capacity states, and the named records returned by remote calls.
    notifications.py: `NotificationMessage`, the decoded form of a webhook payload.
"""
