"""Idempotent host provisioning steps used by the orchestrator."""
from __future__ import annotations

from .config_seed import (
    ConfigAction,
    ConfigSeedResult,
    decide_config_action,
    list_config_entries,
    seed_default_config,
)
from .files import FileSpec, install_file
from .filesystem import (
    DirectoryAction,
    DirectoryPlan,
    DirectorySpec,
    apply_directory_plan,
    plan_directories,
)
from .privilege import ensure_privileged
from .service_accounts import (
    ServiceAccountAction,
    ServiceAccountPlan,
    ServiceAccountSpec,
    ServiceAccountStatus,
    apply_service_account_plan,
    inspect_service_account,
    lookup_account_ids,
    plan_service_account,
)

__all__ = [
    # privilege gate
    "ensure_privileged",
    # service account helpers
    "ServiceAccountAction",
    "ServiceAccountPlan",
    "ServiceAccountSpec",
    "ServiceAccountStatus",
    "inspect_service_account",
    "lookup_account_ids",
    "plan_service_account",
    "apply_service_account_plan",
    # filesystem helpers
    "DirectoryAction",
    "DirectoryPlan",
    "DirectorySpec",
    "plan_directories",
    "apply_directory_plan",
    # file installation
    "FileSpec",
    "install_file",
    # config seeding
    "ConfigAction",
    "ConfigSeedResult",
    "decide_config_action",
    "list_config_entries",
    "seed_default_config",
]
