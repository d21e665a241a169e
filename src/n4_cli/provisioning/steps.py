"""Provisioning step definitions.

Defines the fixed order of resolution steps, their dependencies and the
intent switches that gate them.
"""

from dataclasses import dataclass, field

from n4_cli.provisioning.plan import Intent


@dataclass(frozen=True)
class ProvisioningStep:
    """Definition of a provisioning step."""

    id: str
    name: str
    description: str
    depends_on: tuple[str, ...] = ()
    required_intent: str | None = None  # Intent flag that must be true for the step to run
    skip_reason: str | None = None


# Order matters: a step only runs after every step it depends on
PROVISIONING_STEPS: list[ProvisioningStep] = [
    ProvisioningStep(
        id="preamble",
        name="Project Basics",
        description="Collecting project name, destination and API token",
    ),
    ProvisioningStep(
        id="account",
        name="Cloudflare Account",
        description="Selecting the Cloudflare account",
        depends_on=("preamble",),
    ),
    ProvisioningStep(
        id="zone",
        name="Domain",
        description="Selecting a domain (DNS zone)",
        depends_on=("account",),
        required_intent="needs_zone",
        skip_reason="no R2 bucket or custom domain needs a domain",
    ),
    ProvisioningStep(
        id="bucket",
        name="R2 Bucket",
        description="Selecting an R2 bucket",
        depends_on=("account", "zone"),
        required_intent="use_bucket",
        skip_reason="R2 disabled by --no-r2",
    ),
    ProvisioningStep(
        id="bucket_public_url",
        name="R2 Public URL",
        description="Finding the public URL of the R2 bucket",
        depends_on=("zone", "bucket"),
        required_intent="use_bucket",
        skip_reason="R2 disabled by --no-r2",
    ),
    ProvisioningStep(
        id="database",
        name="D1 Database",
        description="Selecting a D1 database",
        depends_on=("account",),
        required_intent="use_database",
        skip_reason="D1 disabled by --no-d1",
    ),
    ProvisioningStep(
        id="supabase",
        name="Supabase",
        description="Verifying the Supabase project",
        depends_on=("preamble",),
    ),
    ProvisioningStep(
        id="project",
        name="Pages Project",
        description="Creating or verifying the Pages project",
        depends_on=("account", "bucket_public_url", "database", "supabase"),
    ),
    ProvisioningStep(
        id="custom_domain",
        name="Custom Domain",
        description="Attaching a custom domain",
        depends_on=("project", "zone"),
    ),
]

STEP_INDEX: dict[str, int] = {step.id: i for i, step in enumerate(PROVISIONING_STEPS)}


@dataclass
class StepSelection:
    """Steps to run for an intent, plus the ones skipped up front."""

    steps: list[ProvisioningStep] = field(default_factory=list)
    skipped: list[ProvisioningStep] = field(default_factory=list)


def get_provisioning_steps(intent: Intent) -> StepSelection:
    """Split the step table into steps to run and steps the intent disables.

    Args:
        intent: User intent

    Returns:
        Ordered applicable steps and intent-skipped steps
    """
    selection = StepSelection()
    for step in PROVISIONING_STEPS:
        if step.required_intent and not getattr(intent, step.required_intent):
            selection.skipped.append(step)
        else:
            selection.steps.append(step)
    return selection


def validate_step_order(steps: list[ProvisioningStep]) -> None:
    """Check that every dependency precedes its dependent step.

    Raises:
        ValueError: If a step depends on an unknown or later step
    """
    for position, step in enumerate(steps):
        for dependency in step.depends_on:
            if dependency not in STEP_INDEX:
                raise ValueError(f"Step {step.id} depends on unknown step {dependency}")
            if STEP_INDEX[dependency] >= STEP_INDEX[step.id]:
                raise ValueError(f"Step {step.id} must run after {dependency}")
        if position and STEP_INDEX[steps[position - 1].id] >= STEP_INDEX[step.id]:
            raise ValueError(f"Step {step.id} is out of order")
