"""Resource resolution and provisioning orchestration."""

from n4_cli.provisioning.catalog import ResourceCatalog
from n4_cli.provisioning.models import (
    CreatedResource,
    CreateNew,
    ResolutionOutcome,
    ResolutionState,
    ResourceEntry,
    ResourceKind,
    ResourceListing,
    Reuse,
    Skip,
)
from n4_cli.provisioning.orchestrator import (
    ProvisioningEvent,
    ProvisioningOrchestrator,
    build_project_payload,
)
from n4_cli.provisioning.plan import Intent, ProvisioningPlan
from n4_cli.provisioning.policy import KindSpec, ProjectAction, ResolutionPolicy
from n4_cli.provisioning.steps import PROVISIONING_STEPS, ProvisioningStep

__all__ = [
    "CreateNew",
    "CreatedResource",
    "Intent",
    "KindSpec",
    "PROVISIONING_STEPS",
    "ProjectAction",
    "ProvisioningEvent",
    "ProvisioningOrchestrator",
    "ProvisioningPlan",
    "ProvisioningStep",
    "ResolutionOutcome",
    "ResolutionPolicy",
    "ResolutionState",
    "ResourceCatalog",
    "ResourceEntry",
    "ResourceKind",
    "ResourceListing",
    "Reuse",
    "Skip",
    "build_project_payload",
]
