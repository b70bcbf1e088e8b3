"""Kiosk ("corporate-owned, single-use") policy construction.

Everything here is pure: no I/O, no clock, no randomness.
"""

from __future__ import annotations

from amapi_cosu.models import ApplicationPolicy, PersistentPreferredActivity, Policy


INSTALL_TYPE_FORCE_INSTALLED = "FORCE_INSTALLED"
PERMISSION_POLICY_GRANT = "GRANT"

ACTION_MAIN = "android.intent.action.MAIN"
CATEGORY_HOME = "android.intent.category.HOME"
CATEGORY_DEFAULT = "android.intent.category.DEFAULT"


def build_kiosk_policy(app_package: str) -> Policy:
    """Lock the device to a single force-installed app acting as the launcher."""
    return Policy(
        applications=(
            ApplicationPolicy(
                package_name=app_package,
                install_type=INSTALL_TYPE_FORCE_INSTALLED,
                default_permission_policy=PERMISSION_POLICY_GRANT,
                lock_task_allowed=True,
            ),
        ),
        persistent_preferred_activities=(
            PersistentPreferredActivity(
                receiver_activity=app_package,
                actions=(ACTION_MAIN,),
                categories=(CATEGORY_HOME, CATEGORY_DEFAULT),
            ),
        ),
        keyguard_disabled=True,
        status_bar_disabled=True,
    )


def policy_resource_name(enterprise_name: str, policy_id: str) -> str:
    return f"{enterprise_name}/policies/{policy_id}"
