"""Clone, install, build and deploy the materialized project."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from n4_cli.config import Config
from n4_cli.exceptions import ProcessFailedError, ProviderError, ResourceError
from n4_cli.observability import Timer, emit_timer, get_logger
from n4_cli.protocols.process import ProcessResult, ProcessRunner
from n4_cli.providers.base import CloudflareApi
from n4_cli.provisioning.plan import ProvisioningPlan

logger = get_logger(__name__)

StageCallback = Callable[[str], None]


@dataclass
class DeployReport:
    """Outcome of a deploy run."""

    project_name: str
    public_address: str | None = None
    verified: bool = False
    stages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class DeployPipeline:
    """Runs the external commands that ship the project.

    Every stage blocks until its child process exits; a non-zero exit
    stops the pipeline with :class:`ProcessFailedError`. The API token is
    passed to the deploy command through its environment only.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        config: Config | None = None,
        client: CloudflareApi | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            runner: Process runner for child commands
            config: Application configuration (defaults if omitted)
            client: Cloudflare client used for the final read-back
        """
        self.runner = runner
        self.config = config or Config()
        self.client = client

    async def _run_stage(
        self,
        stage: str,
        command: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> ProcessResult:
        with Timer() as timer:
            result = await self.runner.run(command, cwd=cwd, env=env)
        emit_timer("deploy.stage", timer.duration_ms, {"stage": stage})

        if not result.ok:
            logger.error(
                "Deploy stage failed",
                context={"stage": stage, "exit_code": result.exit_code},
            )
            raise ProcessFailedError(stage, result.exit_code, result.stderr)

        logger.info("Deploy stage completed", context={"stage": stage}, duration_ms=timer.duration_ms)
        return result

    async def clone(self, destination: str | Path, repo_url: str | None = None) -> None:
        """Clone the project template into ``destination``."""
        url = repo_url or self.config.template.repo_url
        await self._run_stage("clone", ["git", "clone", url, str(destination)])

    async def install(self, destination: str | Path) -> None:
        await self._run_stage("install", list(self.config.pipeline.install_command), cwd=destination)

    async def build(self, destination: str | Path) -> None:
        await self._run_stage("build", list(self.config.pipeline.build_command), cwd=destination)

    async def deploy(self, plan: ProvisioningPlan, api_token: str) -> None:
        """Upload the build output to the Pages project.

        Raises:
            ValueError: If the plan has no destination or Pages project
            ProcessFailedError: If the deploy command fails
        """
        if not plan.destination or not plan.pages_project:
            raise ValueError("Deploy requires a destination and a Pages project")

        command = [
            *self.config.pipeline.deploy_command,
            self.config.template.public_dir,
            f"--project-name={plan.pages_project}",
        ]
        env = {"CLOUDFLARE_API_TOKEN": api_token}
        if plan.account_id:
            env["CLOUDFLARE_ACCOUNT_ID"] = plan.account_id
        await self._run_stage("deploy", command, cwd=plan.destination, env=env)

    async def verify(self, plan: ProvisioningPlan) -> str | None:
        """Read the Pages project back and return its public address.

        The plan is left as recorded; a custom domain wins over the
        read-back subdomain. Returns ``None`` if the read-back fails; the
        deploy itself already succeeded so this is only logged.
        """
        if self.client is None or not plan.account_id or not plan.pages_project:
            return None

        try:
            project = await self.client.get_pages_project(plan.account_id, plan.pages_project)
        except (ProviderError, ResourceError) as e:
            logger.warning(
                "Could not verify Pages project after deploy",
                context={"project": plan.pages_project},
                error=e,
            )
            return None

        if plan.custom_domain:
            return plan.custom_domain
        return project.subdomain or plan.public_address

    async def run(
        self,
        plan: ProvisioningPlan,
        api_token: str,
        on_stage: StageCallback | None = None,
    ) -> DeployReport:
        """Install, build, deploy and verify.

        Args:
            plan: Completed provisioning plan (destination already materialized)
            api_token: Cloudflare API token injected into the deploy command
            on_stage: Called with each stage name before it starts

        Returns:
            Deploy report

        Raises:
            ProcessFailedError: If install, build or deploy exits non-zero
        """
        if not plan.destination or not plan.pages_project:
            raise ValueError("Deploy requires a destination and a Pages project")

        report = DeployReport(project_name=plan.pages_project)

        def stage(name: str) -> None:
            report.stages.append(name)
            if on_stage is not None:
                on_stage(name)

        stage("install")
        await self.install(plan.destination)
        stage("build")
        await self.build(plan.destination)
        stage("deploy")
        await self.deploy(plan, api_token)
        stage("verify")
        address = await self.verify(plan)

        report.verified = address is not None
        report.public_address = address or plan.public_address
        if not report.verified:
            report.warnings.append(
                f"Deployed, but could not confirm Pages project {plan.pages_project}"
            )
        return report
