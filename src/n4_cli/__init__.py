"""n4-cli - Provision and deploy the N4 stack on Cloudflare Pages."""

from n4_cli.config import Config
from n4_cli.deploy import DeployPipeline, DeployReport
from n4_cli.materializer import MaterializationReport, ProjectMaterializer
from n4_cli.observability import (
    LogLevel,
    RunContext,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    register_metric_callback,
)
from n4_cli.provisioning import (
    Intent,
    ProvisioningOrchestrator,
    ProvisioningPlan,
    ResourceCatalog,
)

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "Intent",
    "ProvisioningOrchestrator",
    "ProvisioningPlan",
    "ResourceCatalog",
    # Project files and deploy
    "DeployPipeline",
    "DeployReport",
    "MaterializationReport",
    "ProjectMaterializer",
    # Observability
    "LogLevel",
    "RunContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "emit_counter",
    "emit_metric",
    "emit_timer",
    "get_logger",
    "register_metric_callback",
]
