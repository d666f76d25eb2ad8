from gbp_access.automation.registry import (
    AutomationConfig,
    AutomationRegistry,
    AutomationRegistryError,
    SqlAutomationRegistry,
    disabled_settings,
)

__all__ = [
    "AutomationConfig",
    "AutomationRegistry",
    "AutomationRegistryError",
    "SqlAutomationRegistry",
    "disabled_settings",
]
