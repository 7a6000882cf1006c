"""
Command Line Interface for the FPL Assistant infrastructure.

Usage:
    fpl-infra [deploy]     Deploy or update the infrastructure
    fpl-infra cleanup      Delete all resources
    fpl-infra status       Show the current stack status
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import structlog
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from fpl_infra.config import ENVIRONMENTS, Settings
from fpl_infra.deployer import InfrastructureDeployer
from fpl_infra.exceptions import DeploymentError, StackOperationError
from fpl_infra.models import CleanupResult, DeploymentResult, StackSummary

logger = structlog.get_logger(__name__)

COMMAND_HELP = {
    "deploy": "Deploy the infrastructure",
    "cleanup": "Delete all resources",
    "status": "Show current stack status",
}

BANNER_WIDTH = 88


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def confirm(prompt: str) -> bool:
    """Ask a yes/no question; anything but y/yes is a no."""
    try:
        response = input(prompt)
    except EOFError:
        return False
    return response.strip().lower() in ("y", "yes")


def format_deployment(result: DeploymentResult, settings: Settings) -> str:
    """Render connection details for a finished deployment."""
    outputs = result.outputs
    web_server_ip = outputs.get("WebServerPublicIP", "N/A")
    data_bucket = outputs.get("DataBucketName", "N/A")

    lines = [
        "",
        "=" * BANNER_WIDTH,
        "DEPLOYMENT COMPLETE!" if result.changed else "NO CHANGES: STACK IS UP TO DATE",
        "=" * BANNER_WIDTH,
        "",
        "Web Server Details:",
        f"  Public IP: {web_server_ip}",
        f"  SSH Command: ssh -i {settings.key_file} ec2-user@{web_server_ip}",
        "",
        "AWS Resources Created:",
        f"  Data Bucket: {data_bucket}",
        f"  DynamoDB Tables: {', '.join(settings.table_names())}",
        "",
        "Next Steps:",
        "  1. SSH into your EC2 instance using the command above",
        "  2. Clone your project repository",
        "  3. Start setting up your data collection scripts",
        "",
        "=" * BANNER_WIDTH,
    ]
    return "\n".join(lines)


def format_status(summary: StackSummary, format_type: str = "pretty") -> str:
    """Format a stack summary as JSON or a pretty table."""
    if format_type == "json":
        return json.dumps(summary.model_dump(mode="json"), indent=2)

    rows = [
        ("StackName", summary.stack_name),
        ("StackStatus", summary.stack_status),
        ("CreationTime", summary.creation_time.isoformat() if summary.creation_time else "N/A"),
    ]
    if summary.last_updated_time:
        rows.append(("LastUpdatedTime", summary.last_updated_time.isoformat()))
    if summary.status_reason:
        rows.append(("StatusReason", summary.status_reason))

    key_width = max(len(key) for key, _ in rows)
    value_width = max(len(str(value)) for _, value in rows)
    border = "-" * (key_width + value_width + 8)
    output = [border, f"|{'DescribeStacks'.center(len(border) - 2)}|", border]
    for key, value in rows:
        output.append(f"|  {key.ljust(key_width)} | {str(value).ljust(value_width)} |")
    output.append(border)
    return "\n".join(output)


def report_failure(error: DeploymentError) -> None:
    """Log a failure with whatever detail the provider gave us."""
    logger.error(str(error))
    if isinstance(error, StackOperationError):
        if error.reason:
            logger.error("Stack status reason", reason=error.reason)
        for failure in error.failures:
            logger.error(
                "Resource failed",
                resource=failure.logical_resource_id,
                type=failure.resource_type,
                status=failure.resource_status,
                reason=failure.status_reason,
            )


async def cmd_deploy(args: argparse.Namespace, deployer: InfrastructureDeployer) -> int:
    """Deploy the infrastructure."""
    result = await deployer.deploy()
    logger.info("Infrastructure deployment completed successfully", stack=result.stack_name)

    if args.format == "json":
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        print(format_deployment(result, deployer.settings))
    return 0


async def cmd_cleanup(args: argparse.Namespace, deployer: InfrastructureDeployer) -> int:
    """Delete the stack and, optionally, the key pair."""
    settings = deployer.settings
    deployer.preflight()

    result = CleanupResult(stack_name=settings.stack_name)
    if not args.force:
        logger.warning("This will delete all resources created by this tool", stack=settings.stack_name)
        if not confirm("Are you sure you want to proceed? (y/N): "):
            result.cancelled = True
            if args.format == "json":
                print(json.dumps(result.model_dump(mode="json"), indent=2))
            else:
                print("Cleanup cancelled.")
            return 0

    logger.info("Stack deletion initiated, this may take a few minutes", stack=settings.stack_name)
    result.emptied_buckets = deployer.destroy(empty_buckets=args.cleanup)

    # --force only answers the stack prompt; the key pair is kept
    if not args.force and confirm(f"Do you want to delete the key pair {settings.key_name}? (y/N): "):
        deployer.delete_key_pair()
        result.key_pair_deleted = True

    if args.format == "json":
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0


async def cmd_status(args: argparse.Namespace, deployer: InfrastructureDeployer) -> int:
    """Show the stack's name, status and creation time."""
    deployer.preflight()
    summary = deployer.status()
    print(format_status(summary, args.format))
    return 0


COMMANDS = {
    "deploy": cmd_deploy,
    "cleanup": cmd_cleanup,
    "status": cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    epilog = "commands:\n" + "\n".join(
        f"  {name:<8} - {help_text}" for name, help_text in COMMAND_HELP.items()
    )
    parser = argparse.ArgumentParser(
        prog="fpl-infra",
        description="Deploy and manage the FPL Assistant infrastructure",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="deploy",
        metavar="{deploy|cleanup|status}",
        help="Operation to run (default: deploy)",
    )
    parser.add_argument("--project-name", help="Project name used in resource names")
    parser.add_argument("--environment", choices=ENVIRONMENTS, help="Deployment environment")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("--profile", dest="aws_profile", help="AWS CLI profile")
    parser.add_argument(
        "--template-file",
        type=Path,
        help="Deploy a pre-synthesized template instead of synthesizing the stack",
    )
    parser.add_argument("--key-dir", type=Path, help="Directory for the private key file")
    parser.add_argument(
        "--format",
        choices=["pretty", "json"],
        default="pretty",
        help="Output format (default: pretty)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip the cleanup confirmation prompt",
    )
    parser.add_argument(
        "--no-cleanup",
        dest="cleanup",
        action="store_false",
        default=True,
        help="Do not empty S3 buckets before deleting the stack",
    )
    return parser


def build_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment, overridden by explicit CLI options."""
    overrides = {
        "project_name": args.project_name,
        "environment": args.environment,
        "region": args.region,
        "aws_profile": args.aws_profile,
        "template_file": args.template_file,
        "key_dir": args.key_dir,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level)

    try:
        deployer = InfrastructureDeployer(settings)
        return asyncio.run(COMMANDS[args.command](args, deployer))
    except DeploymentError as e:
        report_failure(e)
        return 1
    except (ClientError, BotoCoreError) as e:
        logger.error("AWS request failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
