"""
Command-Line Interface (CLI) for the Encode Orchestrator.

This module uses Python's `argparse` to define the commands of the application and
dispatches each of them to the `EncodingPipeline`:

    submit    Submit an encode job over blob URIs or local files.
    notify    Handle one notification payload (a JSON file) as the webhook would.
    status    Print the state of a job.
    capacity  Show or change the reserved encoding capacity.

Results (job ids, statuses) are printed to stdout; everything else is logged to stderr.
"""
import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .config.settings import load_settings
from .domain.exceptions import EncodeOrchestratorException, JobFailedError, ValidationError
from .domain.models import ReservedUnitType
from .domain.notifications import NEW_STATE_PROPERTY, JOB_ID_PROPERTY, NotificationEventType, NotificationMessage
from .pipeline.encoding_pipeline import EncodingPipeline
from .services.logging_service import configure_logging

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_JOB_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="encode-orchestrator",
        description="Submit encode jobs to a media services v2 account and process their notifications.",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path of the settings file (defaults to config.user.yaml at the project root)."
    )
    parser.add_argument(
        "--log-level", type=str, default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level (overrides the settings file)."
    )
    parser.add_argument(
        "--log-file", type=str, default=None,
        help="Also write logs to this file (rotated)."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    submit = subparsers.add_parser("submit", help="Submit an encode job.")
    submit.add_argument("inputs", nargs="+", metavar="INPUT", help="Blob URIs or local file paths.")
    submit.add_argument("--preset", required=True, help="Preset name, or a JSON/XML encoder configuration.")
    submit.add_argument("--output-account", default=None, help="Storage account of the output asset.")
    submit.add_argument("--output-container", default=None, help="Container URI the output is copied into.")
    submit.add_argument("--callback", default=None, help="Callback URI for job notifications.")
    submit.add_argument("--context", default=None, help="Operation context as a JSON value.")
    submit.add_argument(
        "--wait", action="store_true",
        help="Poll the job until it ends, then copy its output and delete its assets."
    )
    submit.add_argument(
        "--reserve-capacity", action="store_true",
        help="With --wait: reserve one S2 unit while the job runs if none is reserved."
    )

    notify = subparsers.add_parser("notify", help="Handle a notification payload file.")
    notify.add_argument("payload_file", metavar="PAYLOAD_FILE", help="JSON file holding one notification.")

    status = subparsers.add_parser("status", help="Print the state of a job.")
    status.add_argument("job_id", metavar="JOB_ID")

    capacity = subparsers.add_parser("capacity", help="Show or set reserved encoding capacity.")
    capacity_commands = capacity.add_subparsers(dest="capacity_command", required=True)
    capacity_commands.add_parser("show", help="Print the reserved capacity.")
    capacity_set = capacity_commands.add_parser("set", help="Change the reserved capacity.")
    capacity_set.add_argument("--unit-type", required=True, choices=[t.value for t in ReservedUnitType])
    capacity_set.add_argument("--units", required=True, type=int)

    return parser


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments.

    Returns:
        argparse.Namespace: The parsed arguments. `--context` is already decoded
                            from JSON into `args.context`.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "context", None) is not None:
        try:
            args.context = json.loads(args.context)
        except ValueError as e:
            parser.error(f"--context is not valid JSON: {e}")
    if getattr(args, "reserve_capacity", False) and not args.wait:
        parser.error("--reserve-capacity requires --wait.")
    return args


# --- Commands ---
def _wait_and_finish(pipeline: EncodingPipeline, job_id: str) -> str:
    snapshot = pipeline.wait_for_job(job_id)
    # A terminal state is handled exactly like its notification.
    message = NotificationMessage(
        event_type=NotificationEventType.TASK_STATE_CHANGE.value,
        properties={JOB_ID_PROPERTY: job_id, NEW_STATE_PROPERTY: snapshot.state.value},
    )
    return pipeline.handle_notification(message).status


def run_submit(pipeline: EncodingPipeline, args: argparse.Namespace) -> int:
    def submit_job() -> str:
        return pipeline.submit(
            args.inputs,
            args.preset,
            output_account_name=args.output_account,
            callback_endpoint=args.callback,
            operation_context=args.context,
            output_container=args.output_container,
        )

    if not args.wait:
        print(submit_job())
        return EXIT_OK

    if args.reserve_capacity:
        with pipeline.capacity_manager.reserved_capacity():
            job_id = submit_job()
            print(job_id)
            status = _wait_and_finish(pipeline, job_id)
    else:
        job_id = submit_job()
        print(job_id)
        status = _wait_and_finish(pipeline, job_id)
    print(status)
    return EXIT_OK


def run_notify(pipeline: EncodingPipeline, args: argparse.Namespace) -> int:
    payload_path = Path(args.payload_file)
    try:
        payload = json.loads(payload_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ValidationError(f"Could not read notification payload '{payload_path}': {e}") from e

    outcome = pipeline.handle_notification(NotificationMessage.from_payload(payload))
    print(f"{outcome.job_id} {outcome.status}")
    return EXIT_OK


def run_status(pipeline: EncodingPipeline, args: argparse.Namespace) -> int:
    snapshot = pipeline.remote_client.get_job(args.job_id)
    print(f"{snapshot.id} {snapshot.name} {snapshot.state.value}")
    return EXIT_OK


def run_capacity(pipeline: EncodingPipeline, args: argparse.Namespace) -> int:
    if args.capacity_command == "set":
        capacity = pipeline.set_capacity(ReservedUnitType(args.unit_type), args.units)
    else:
        capacity = pipeline.get_capacity()
    unit_type = capacity.unit_type.value if capacity.unit_type else "-"
    print(f"{capacity.current_units} x {unit_type} (max {capacity.max_units})")
    return EXIT_OK


COMMANDS = {
    "submit": run_submit,
    "notify": run_notify,
    "status": run_status,
    "capacity": run_capacity,
}


def main(argv: Optional[List[str]] = None, pipeline: Optional[EncodingPipeline] = None) -> int:
    """
    Runs one CLI command.

    Args:
        argv: The command-line arguments. Defaults to `sys.argv[1:]`.
        pipeline: A ready pipeline. When omitted, one is built from the settings and
                  closed when the command ends.

    Returns:
        0 on success, 2 if a job ended in the Error state, 1 on any other failure.
    """
    args = get_args(argv)

    try:
        settings = load_settings(args.config)
    except ValidationError as e:
        configure_logging(args.log_level or "INFO", args.log_file)
        logger.error(f"Invalid settings: {e}")
        return EXIT_ERROR

    configure_logging(args.log_level or settings.log_level, args.log_file)
    logger.debug(f"Parsed arguments: {args}")

    owns_pipeline = pipeline is None
    try:
        if pipeline is None:
            pipeline = EncodingPipeline.from_settings(settings)
        return COMMANDS[args.command](pipeline, args)
    except JobFailedError as e:
        logger.error(str(e))
        return EXIT_JOB_FAILED
    except EncodeOrchestratorException as e:
        logger.error(f"{args.command} failed: {e}")
        return EXIT_ERROR
    finally:
        if owns_pipeline and pipeline is not None:
            pipeline.close()


if __name__ == "__main__":
    sys.exit(main())
