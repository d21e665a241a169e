"""
n4-cli entry point.

Usage:
    n4-cli [options]

Provisions Cloudflare Pages + D1 + R2 (+ Supabase auth) for the N4 stack
template, writes the resulting configuration into a fresh clone and
deploys it. Every option is optional; anything missing is asked for.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Sequence

import yaml
from pydantic import ValidationError

from n4_cli import __version__
from n4_cli.backends import LocalFilePatcher, SubprocessRunner
from n4_cli.cli import ux
from n4_cli.cli.prompts import QuestionaryPrompter
from n4_cli.config import Config
from n4_cli.deploy import DeployPipeline, DeployReport
from n4_cli.exceptions import ConfigError, N4Error
from n4_cli.materializer import MaterializationReport, ProjectMaterializer
from n4_cli.observability import LogLevel, RunContext, configure_logging, get_logger
from n4_cli.protocols.process import ProcessRunner
from n4_cli.protocols.prompts import PromptProvider
from n4_cli.provisioning.orchestrator import (
    ClientFactory,
    ProvisioningEvent,
    ProvisioningOrchestrator,
    SupabaseFactory,
)
from n4_cli.provisioning.plan import Intent, ProvisioningPlan

logger = get_logger(__name__)

DESCRIPTION = (
    "App deployed to Cloudflare Pages with a D1 database (SQLite) "
    "and an R2 CDN, plus Supabase for auth"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="n4-cli", description=DESCRIPTION)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument("-N", "--project-name", dest="project_name",
                        help="Name for your project")
    parser.add_argument("-D", "--destination",
                        help="Destination path where the template is cloned")
    parser.add_argument("--api-token", "--api_key", dest="api_token",
                        help="API token for your Cloudflare account")
    parser.add_argument("--account-id", "--account_id", dest="account_id",
                        help="Cloudflare account id")

    parser.add_argument("--supabase-url", "--SUPABASE_URL", dest="supabase_url",
                        help="Supabase project URL")
    parser.add_argument("--supabase-anon-key", "--SUPABASE_ANON_KEY", dest="supabase_anon_key",
                        help="Supabase project anon key")

    parser.add_argument("--top-level-domain", "--TOP_LEVEL_DOMAIN", dest="zone_name",
                        help="Domain (zone) to use")
    parser.add_argument("--top-level-domain-id", "--TOP_LEVEL_DOMAIN_ID", dest="zone_id",
                        help="Zone id of the domain to use")

    parser.add_argument("--r2-bucket-name", "--R2_BUCKET_NAME", dest="bucket_name",
                        help="Existing R2 bucket to use")
    parser.add_argument("--r2-public-url", "--R2_PUBLIC_URL", dest="bucket_public_url",
                        help="Public URL of the R2 bucket")
    parser.add_argument("--no-r2", "--no-R2", dest="use_bucket", action="store_false",
                        help="Don't use an R2 bucket for this project")

    parser.add_argument("--d1-database-id", "--D1_DATABASE_ID", dest="database_id",
                        help="Existing D1 database id")
    parser.add_argument("--d1-database-name", "--D1_DATABASE_NAME", dest="database_name",
                        help="Existing D1 database name")
    parser.add_argument("--no-d1", "--no-D1", dest="use_database", action="store_false",
                        help="Don't use a D1 database for this project")

    parser.add_argument("--existing-project", "--project_name", dest="existing_project",
                        help="Existing Pages project to deploy to instead of creating one")
    parser.add_argument("--custom-domain", dest="custom_domain",
                        help="Custom domain to attach to the Pages project")

    parser.add_argument("--config", help="Path to a YAML or JSON config file")
    parser.add_argument("--log-level", choices=[level.value for level in LogLevel],
                        help="Diagnostic log level (stderr)")
    parser.add_argument("--log-format", choices=["text", "json"],
                        help="Diagnostic log format")
    return parser


def load_config(path: str | None) -> Config:
    """Load the config file, or defaults when no path is given.

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    if not path:
        return Config()
    try:
        return Config.from_file(path)
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not load config {path}: {e}") from e


def build_intent(args: argparse.Namespace, config: Config) -> Intent:
    """Freeze parsed flags (over config values) into an :class:`Intent`."""
    flags: dict[str, Any] = vars(args).copy()
    for key in ("config", "log_level", "log_format"):
        flags.pop(key, None)
    return Intent.from_sources(flags, config)


def print_event(event: ProvisioningEvent) -> None:
    if event.type == "step_started" and event.step_number is not None:
        ux.step(event.step_number, event.step_name or event.step_id or "")
    elif event.type == "step_skipped":
        ux.muted(f"Skipping {event.step_name or event.step_id}: {event.reason}")
    elif event.type == "warning" and event.reason:
        ux.warning(event.reason)


def print_summary(
    plan: ProvisioningPlan,
    files: MaterializationReport,
    deploy: DeployReport,
) -> None:
    ux.header("Project ready")
    ux.print_key_value(
        {
            "Project": plan.pages_project or "",
            "Account": plan.account_name or "",
            "Domain": plan.zone_name or "",
            "R2 bucket": plan.bucket_name or "",
            "R2 public URL": plan.bucket_public_url or "",
            "D1 database": plan.database_name or "",
            "Supabase": plan.supabase_url or "",
            "Directory": plan.destination or "",
        }
    )
    for resource in plan.created:
        ux.success(f"Created {resource.describe()}")
    for failure in files.failed:
        ux.warning(f"Not updated: {failure.path} ({failure.reason})")
    for message in deploy.warnings:
        ux.warning(message)
    if deploy.public_address:
        address = deploy.public_address
        if "://" not in address:
            address = f"https://{address}"
        ux.success(f"Live at {address}")


async def run_stack(
    intent: Intent,
    config: Config,
    prompter: PromptProvider,
    runner: ProcessRunner | None = None,
    client_factory: ClientFactory | None = None,
    supabase_factory: SupabaseFactory | None = None,
) -> ProvisioningPlan:
    """Provision, materialize and deploy.

    Returns:
        The completed plan

    Raises:
        N4Error: Any unrecoverable failure
    """
    async with RunContext() as run:
        logger.info("Starting n4-cli run", context={"run_id": run.run_id})
        orchestrator = ProvisioningOrchestrator(
            intent,
            prompter,
            config=config,
            client_factory=client_factory,
            supabase_factory=supabase_factory,
            on_event=print_event,
        )
        plan = await orchestrator.run()

        pipeline = DeployPipeline(
            runner or SubprocessRunner(config.pipeline.timeout_seconds),
            config,
            client=orchestrator.client,
        )
        try:
            with ux.spinner(f"Cloning template into {plan.destination}"):
                await pipeline.clone(plan.destination)
            ux.success("Repository cloned")

            files = ProjectMaterializer(LocalFilePatcher(plan.destination)).materialize(plan)
            if files.updated:
                ux.success(f"Updated {', '.join(files.updated)}")

            deploy = await pipeline.run(
                plan,
                orchestrator.api_token or "",
                on_stage=lambda stage: ux.info(f"Running {stage}"),
            )
        except N4Error as e:
            e.created = tuple(plan.created)
            raise

        print_summary(plan, files, deploy)
        logger.info("n4-cli run completed", context=plan.to_dict())
        return plan


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on bad usage; --help and --version exit 0
        return 0 if e.code in (0, None) else 1

    try:
        config = load_config(args.config)
        configure_logging(
            level=LogLevel((args.log_level or config.logging.level).upper()),
            format=args.log_format or config.logging.format,
        )
        intent = build_intent(args, config)
        asyncio.run(run_stack(intent, config, QuestionaryPrompter()))
    except N4Error as e:
        ux.error(str(e))
        if e.created:
            ux.warning("Resources created before the failure (remove them by hand if unwanted):")
            for resource in e.created:
                ux.muted(f"  - {resource.describe()}")
        return 1
    except ValueError as e:
        ux.error(str(e))
        return 1
    except KeyboardInterrupt:
        ux.error("Cancelled")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
