"""
Services Package for the Encode Orchestrator.

This package contains the "service layer" of the application. A service performs
one high-level task against the remote encoding service through the narrow
interfaces in `interfaces.py`, so it can be tested with in-memory fakes.

- **Job Submission (`JobSubmitter`):**
  Creates and fills the input asset and submits a single-task encode job that
  carries the caller's correlation data in its task name.

- **Notification Handling (`NotificationProcessor`):**
  Reacts to task state changes and progress events: copies the output of finished
  jobs and releases the assets of ended jobs.

- **Asset Operations (`AssetOperations`):**
  The remote call sequences shared by both of the above.

- **Capacity and Monitoring (`ReservedCapacityManager`, `JobMonitor`):**
  Reserve encoding units around work, and poll jobs that have no callback.

- **Presets and Logging (`YamlPresetResolver`, `configure_logging`):**
  Resolve preset names from a YAML catalogue and set up the loguru sinks.
"""
