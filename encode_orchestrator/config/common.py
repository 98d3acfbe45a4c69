"""
Common configuration settings used throughout the application.

This module contains the static constants shared by every part of the encode
orchestrator: the limits imposed by the remote encoding service, the fixed names
used when talking to it, the wire headers of its REST API and the logging format.
User-specific values (endpoints, tokens, default containers) are not kept here;
they are loaded from 'config.user.yaml' by `encode_orchestrator.config.settings`.
"""
from pathlib import Path

# The project root. 'config.user.yaml' is looked up here when no explicit
# configuration path is given.
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"

# Prefix of every environment variable that can override a value of the user config
# (e.g. ENCODE_ACCESS_TOKEN overrides `access_token`).
ENV_PREFIX = "ENCODE_"


# --- Logging Configuration ---

# The format string for the Loguru logger. It defines the structure and appearance
# of log messages, including timestamp, level, module name, and the message itself.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{process} - <level>{message}</level>"
)

# Rotation and retention of the optional log file sink.
LOG_FILE_ROTATION = "10 MB"
LOG_FILE_RETENTION = 5


# --- Correlation Data ---

# The remote task 'Name' field is the only free-text field that survives a round trip
# through the encoding service. Encoded correlation data must fit into it.
MAX_CORRELATION_DATA_LENGTH = 4000

# Keys of the correlation data mapping embedded in the first task name.
OPERATION_CONTEXT_KEY = "operationContext"
OUTPUT_ASSET_CONTAINER_KEY = "outputAssetContainer"


# --- Remote Naming ---

# Every asset created by this application carries this prefix, followed by the
# storage account and container (or file) it was derived from.
ASSET_NAME_PREFIX = "V2"
INPUT_ASSET_SUFFIX = "Input"
OUTPUT_ASSET_SUFFIX = "Output"

# Length of the random suffix appended to the output asset name to build a job name.
JOB_NAME_SUFFIX_LENGTH = 11

# The encoder every job is submitted to.
ENCODER_PROCESSOR_NAME = "Media Encoder Standard"

# Name under which the callback endpoint is registered on the remote service.
CALLBACK_ENDPOINT_NAME = "EncodeJobCallback"


# --- Remote REST API ---

ODATA_VERBOSE_JSON = "application/json;odata=verbose"
PLAIN_JSON = "application/json"

REST_DEFAULT_HEADERS = {
    "Accept": ODATA_VERBOSE_JSON,
    "Content-Type": ODATA_VERBOSE_JSON,
    "DataServiceVersion": "3.0",
    "MaxDataServiceVersion": "3.0",
    "x-ms-version": "2.19",
}

# Notification endpoint registration values understood by the remote service.
NOTIFICATION_ENDPOINT_TYPE_WEBHOOK = 3
NOTIFICATION_CREDENTIAL_TYPE_NONE = 0
NOTIFICATION_PROTECTION_KEY_TYPE = 0

# Task state a notification subscription is filed under. The remote service only
# accepts this value for "notify on every state change of the task".
NOTIFICATION_TARGET_TASK_STATE = 2

# Default timeout for a single HTTP request to the remote service or blob storage.
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0


# --- Blob Storage ---

BLOB_API_VERSION = "2021-08-06"

# How often a pending server-side blob copy is polled, and for how long at most.
BLOB_COPY_POLL_INTERVAL_SECONDS = 2.0
BLOB_COPY_MAX_WAIT_SECONDS = 4 * 60 * 60

# Lifetime of the read-only SAS issued for a copy source. The signature starts this
# much earlier than "now" to tolerate clock skew between us and the storage service.
BLOB_COPY_SAS_TTL_SECONDS = BLOB_COPY_MAX_WAIT_SECONDS
SAS_CLOCK_SKEW_SECONDS = 5 * 60
SAS_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


# --- Job Monitoring ---

# Interval between two job state reads when waiting for a job to finish.
JOB_POLL_INTERVAL_SECONDS = 10.0
