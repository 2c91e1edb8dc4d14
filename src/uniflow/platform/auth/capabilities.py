"""
Capability catalog.

The closed set of (feature, action) pairs the CRM knows about. Grants and
plan checks are validated against this catalog, so a typo in a grant is an
error instead of a silently dead permission.
"""

from enum import Enum

from uniflow.platform.domain import UniflowError


class Feature(str, Enum):
    USER_MANAGEMENT = "user_management"
    ROLE_MANAGEMENT = "role_management"
    GROUP_MANAGEMENT = "group_management"
    LEAD_MANAGEMENT = "lead_management"
    ACCOUNT_MANAGEMENT = "account_management"
    CONTACT_MANAGEMENT = "contact_management"
    ACTIVITY_MANAGEMENT = "activity_management"
    REPORT_MANAGEMENT = "report_management"
    DATA_CENTER = "data_center"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"
    CONVERT = "convert"
    IMPORT = "import"
    EXPORT = "export"
    MOVE_TO_LEADS = "move_to_leads"


_CRUD = frozenset({Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.MANAGE})

CAPABILITIES: dict[Feature, frozenset[Action]] = {
    Feature.USER_MANAGEMENT: _CRUD,
    Feature.ROLE_MANAGEMENT: _CRUD,
    Feature.GROUP_MANAGEMENT: _CRUD,
    Feature.LEAD_MANAGEMENT: _CRUD | {Action.CONVERT, Action.IMPORT, Action.EXPORT},
    Feature.ACCOUNT_MANAGEMENT: _CRUD | {Action.EXPORT},
    Feature.CONTACT_MANAGEMENT: _CRUD | {Action.EXPORT},
    Feature.ACTIVITY_MANAGEMENT: _CRUD,
    Feature.REPORT_MANAGEMENT: frozenset(
        {Action.READ, Action.CREATE, Action.EXPORT, Action.MANAGE}
    ),
    Feature.DATA_CENTER: _CRUD | {Action.EXPORT, Action.MOVE_TO_LEADS},
}


class UnknownCapabilityError(UniflowError):
    """A (feature, action) pair outside the capability catalog."""

    default_code = "UNKNOWN_CAPABILITY"

    def __init__(self, feature: str, action: str | None = None) -> None:
        target = f"{feature}:{action}" if action else feature
        super().__init__(
            f"Unknown capability {target}",
            status_code=400,
            context={"feature": feature, "action": action},
            recovery_hint="Use a feature and action from the capability catalog",
        )


def resolve(feature: Feature | str, action: Action | str) -> tuple[Feature, Action]:
    """Coerce and validate a capability pair against the catalog."""
    try:
        feature_value = Feature(feature)
    except ValueError:
        raise UnknownCapabilityError(str(feature)) from None
    try:
        action_value = Action(action)
    except ValueError:
        raise UnknownCapabilityError(feature_value.value, str(action)) from None

    if action_value not in CAPABILITIES[feature_value]:
        raise UnknownCapabilityError(feature_value.value, action_value.value)
    return feature_value, action_value
