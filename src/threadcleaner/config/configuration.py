from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class Setting:
    package_name: str
    env_var: str
    group: str
    description: str
    default: Any = None
    enum: List[str] | None = None


_registry: Dict[str, Setting] = {}


def register_setting(
    package_name: str,
    env_var: str,
    group: str,
    description: str,
    default: Any = None,
    enum: List[str] | None = None,
) -> Setting:
    """Declare a configuration key and its built-in default.

    Registering the same ``env_var`` again replaces the earlier declaration,
    so an embedding application can change a default before the first
    cleaner is created.

    Parameters
    ----------
    package_name: str
        Package that owns the key.
    env_var: str
        Name looked up in the environment and in settings.yaml.
    group: str
        Heading the key is listed under.
    description: str
        Human readable description of the key.
    default: Any
        Value used when neither the environment nor the settings file sets it.
    enum: List[str] | None
        Accepted values, when the key is a choice.

    Returns
    -------
    Setting
        The stored declaration.
    """
    setting = Setting(
        package_name=package_name,
        env_var=env_var,
        group=group,
        description=description,
        default=default,
        enum=enum,
    )
    _registry[env_var] = setting
    return setting


def get_settings_registry() -> List[Setting]:
    """Return every declared setting in registration order."""
    return list(_registry.values())


def get_default_values() -> Dict[str, Any]:
    """Map each declared key to its built-in default."""
    return {setting.env_var: setting.default for setting in _registry.values()}
