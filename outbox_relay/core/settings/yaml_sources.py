"""YAML config source with conf.d directory support.

Extends pydantic-settings YamlConfigSettingsSource to support:
- Main YAML file (e.g., conf/outbox.yaml)
- conf.d directory merging (e.g., conf/outbox.d/*.yaml)
- Alphabetical file ordering in conf.d
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic_settings.sources.providers.yaml import YamlConfigSettingsSource

if TYPE_CHECKING:
    from pydantic_settings import BaseSettings


class ConfDYamlConfigSettingsSource(YamlConfigSettingsSource):
    """YAML settings source with conf.d directory support.

    Supports the standard Linux conf.d pattern:
    - conf/outbox.yaml        (base configuration)
    - conf/outbox.d/*.yaml    (override files, merged alphabetically)

    An environment variable can point at another config directory,
    e.g. OUTBOX_CONFIG_DIR=/etc/outbox-relay.
    """

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: str,
        confd_dir: str | None,
        config_dir_env: str = "CONFIG_DIR",
        base_dir: str = "conf",
        yaml_file_encoding: str | None = "utf-8",
    ) -> None:
        """Initialize the conf.d YAML source.

        Args:
            settings_cls: The settings class being configured.
            yaml_file: Main YAML file name (e.g., "outbox.yaml").
            confd_dir: conf.d subdirectory name (e.g., "outbox.d"), or None to disable.
            config_dir_env: Environment variable to override base directory.
            base_dir: Default base directory for config files.
            yaml_file_encoding: File encoding for YAML files.
        """
        config_base = Path(os.getenv(config_dir_env, base_dir))

        yaml_files: list[Path] = []

        main_file = config_base / yaml_file
        if main_file.exists():
            yaml_files.append(main_file)

        if confd_dir:
            confd_path = config_base / confd_dir
            if confd_path.is_dir():
                yaml_files.extend(sorted(confd_path.glob("*.yaml")))
                yaml_files.extend(sorted(confd_path.glob("*.yml")))

        self._yaml_files = yaml_files

        super().__init__(
            settings_cls=settings_cls,
            yaml_file=yaml_files if yaml_files else None,
            yaml_file_encoding=yaml_file_encoding,
        )

    def __repr__(self) -> str:
        """Return human-readable summary of configured YAML files."""
        files_str = ", ".join(str(f) for f in self._yaml_files)
        return f"{self.__class__.__name__}(yaml_files=[{files_str}])"


def create_yaml_source(
    settings_cls: type[BaseSettings],
    name: str,
) -> ConfDYamlConfigSettingsSource:
    """Create the conf.d YAML source for one settings domain.

    Loads conf/<name>.yaml and conf/<name>.d/*.yaml; the directory can be
    overridden with <NAME>_CONFIG_DIR.
    """
    return ConfDYamlConfigSettingsSource(
        settings_cls,
        yaml_file=f"{name}.yaml",
        confd_dir=f"{name}.d",
        config_dir_env=f"{name.upper()}_CONFIG_DIR",
    )
