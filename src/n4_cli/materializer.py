"""Writes the resolved plan into the cloned project template."""

import json
from dataclasses import dataclass, field
from typing import Callable

from n4_cli.exceptions import FileUpdateError
from n4_cli.observability import get_logger
from n4_cli.protocols.file_patcher import FilePatcher
from n4_cli.provisioning.plan import ProvisioningPlan

logger = get_logger(__name__)

PACKAGE_JSON = "package.json"
DEV_VARS = ".dev.vars"
WRANGLER_TOML = "wrangler.toml"
ENV_TYPES = "remix.env.d.ts"
SITE_CONFIG = "app/config/site.ts"

# A [[r2_buckets]] table runs until the next table header
R2_BUCKETS_TABLE = r"^\[\[r2_buckets\]\][^\[]*"
R2_TYPE_DECLARATIONS = (
    r"R2_BUCKET: R2Bucket;\s*",
    r"R2_PUBLIC_URL: string;\s*",
)


@dataclass
class MaterializationReport:
    """Which template files were updated and which failed."""

    updated: list[str] = field(default_factory=list)
    failed: list[FileUpdateError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class ProjectMaterializer:
    """Applies a :class:`ProvisioningPlan` to the template files.

    Every file is handled independently: a failure on one is recorded in
    the report and the rest are still attempted. With storage disabled no
    materialized file mentions the R2 binding or its placeholders.
    """

    def __init__(self, patcher: FilePatcher) -> None:
        self.patcher = patcher

    def materialize(self, plan: ProvisioningPlan) -> MaterializationReport:
        """Update every template file from the plan.

        Args:
            plan: Completed provisioning plan

        Returns:
            Report of updated and failed files
        """
        if not plan.project_name:
            raise ValueError("Cannot materialize a plan without a project name")

        report = MaterializationReport()
        updates: list[tuple[str, Callable[[ProvisioningPlan], bool]]] = [
            (PACKAGE_JSON, self._update_package_json),
            (DEV_VARS, self._write_dev_vars),
            (WRANGLER_TOML, self._update_wrangler_config),
            (ENV_TYPES, self._update_env_types),
            (SITE_CONFIG, self._update_site_config),
        ]
        for path, update in updates:
            try:
                if update(plan):
                    report.updated.append(path)
            except FileUpdateError as e:
                self._record_failure(report, e)
            except (OSError, ValueError) as e:
                self._record_failure(report, FileUpdateError(path, str(e)))

        logger.info(
            "Materialized project files",
            context={"updated": report.updated, "failed": [f.path for f in report.failed]},
        )
        return report

    def _record_failure(self, report: MaterializationReport, error: FileUpdateError) -> None:
        report.failed.append(error)
        logger.warning("Could not update template file", context={"path": error.path}, error=error)

    def _update_package_json(self, plan: ProvisioningPlan) -> bool:
        try:
            package = json.loads(self.patcher.read(PACKAGE_JSON))
        except json.JSONDecodeError as e:
            raise FileUpdateError(PACKAGE_JSON, f"invalid JSON: {e}") from e
        if not isinstance(package, dict):
            raise FileUpdateError(PACKAGE_JSON, "expected a JSON object")

        package["name"] = plan.project_name
        self.patcher.write(PACKAGE_JSON, json.dumps(package, indent=2) + "\n")
        return True

    def _write_dev_vars(self, plan: ProvisioningPlan) -> bool:
        lines = [f'{key}="{value}"' for key, value in plan.to_env_vars().items()]
        self.patcher.write(DEV_VARS, "\n".join(lines))
        return True

    def _update_wrangler_config(self, plan: ProvisioningPlan) -> bool:
        if not plan.database_enabled:
            # Without D1 the template config has nothing left to bind
            self.patcher.truncate(WRANGLER_TOML)
            return True

        self.patcher.substitute(WRANGLER_TOML, "DATABASE_NAME_REPLACE", plan.database_name or "")
        self.patcher.substitute(WRANGLER_TOML, "DATABASE_ID_REPLACE", plan.database_id or "")
        if plan.storage_enabled:
            self.patcher.substitute(WRANGLER_TOML, "BUCKET_NAME_REPLACE", plan.bucket_name or "")
        else:
            self.patcher.regex_substitute(WRANGLER_TOML, R2_BUCKETS_TABLE, "")
        return True

    def _update_env_types(self, plan: ProvisioningPlan) -> bool:
        if plan.storage_enabled:
            return False
        removed = 0
        for pattern in R2_TYPE_DECLARATIONS:
            removed += self.patcher.regex_substitute(ENV_TYPES, pattern, "")
        return removed > 0

    def _update_site_config(self, plan: ProvisioningPlan) -> bool:
        count = self.patcher.substitute(SITE_CONFIG, "PACKAGE_NAME_REPLACE", plan.project_name)
        return count > 0
