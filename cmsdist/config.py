"""Defaults, install options and per-invocation configuration."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Final

from cmsdist.errors import InvalidPackageName

logger = logging.getLogger("cmsdist")

DEFAULT_PREFIX: Final[str] = "/opt/cms"
DEFAULT_ARCHITECTURE: Final[str] = "slc6_amd64_gcc481"
DEFAULT_USER: Final[str] = "cmsbuild"
DEFAULT_REPOSITORY: Final[str] = "cms"
DEFAULT_SERVER: Final[str] = "cmsrep.cern.ch"
DEFAULT_SERVER_PATH: Final[str] = "cmssw/cms"
DEFAULT_CLEANUP_SCRIPT: Final[str] = "cmsrpm_cleanup_v2.pl"

# Per-architecture state directory holding markers and the cleanup script
DOTFILE_DIR: Final[str] = ".cmsdistrc"
MARKER_PREFIX: Final[str] = "PKG_"

OPTION_KEYS: Final[tuple[str, ...]] = (
    "install_prefix",
    "architecture",
    "install_user",
    "repository",
    "server",
    "server_path",
    "cmsrep_script",
)


def default_prefix(environ: Mapping[str, str] | None = None) -> str:
    """Return the install prefix, honouring a boxen-managed Homebrew."""
    environ = os.environ if environ is None else environ
    boxen_home = environ.get("BOXEN_HOME")
    if boxen_home:
        return f"{boxen_home}/homebrew"
    return DEFAULT_PREFIX


@dataclass(frozen=True)
class InstallOptions:
    """Per-resource overrides; ``None`` means "use the default"."""

    install_prefix: str | None = None
    architecture: str | None = None
    install_user: str | None = None
    repository: str | None = None
    server: str | None = None
    server_path: str | None = None
    cmsrep_script: str | None = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[Any, Any]) -> "InstallOptions":
        """Build options from a key/value mapping."""
        values: dict[str, str] = {}
        for key, value in mapping.items():
            if key not in OPTION_KEYS:
                logger.debug("Ignoring unknown install option: %s", key)
                continue
            if value is None or value == "":
                continue
            values[key] = str(value)
        return cls(**values)

    @classmethod
    def from_list(cls, items: list[Any]) -> "InstallOptions":
        """Build options from the first element of a list."""
        if not items:
            logger.debug("install_options is an empty list. Using default.")
            return cls()
        first = items[0]
        if not isinstance(first, Mapping):
            logger.debug("First install_options entry is not a mapping. Using default.")
            return cls()
        return cls.from_mapping(first)

    @classmethod
    def from_raw(cls, value: Any) -> "InstallOptions":
        """Build options from whatever shape the host runtime handed over."""
        if isinstance(value, list):
            return cls.from_list(value)
        if isinstance(value, Mapping):
            return cls.from_mapping(value)
        logger.debug("install_options not specified. Using default.")
        return cls()

    def as_dict(self) -> dict[str, str]:
        """Return only the options that were set."""
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if getattr(self, field.name) is not None
        }


@dataclass(frozen=True)
class PackageName:
    """A resource name split into its parts."""

    fullname: str
    group: str
    package: str
    version: str
    architecture: str | None = None

    @classmethod
    def parse(cls, name: str) -> "PackageName":
        """Parse ``group+package+version[/architecture]``."""
        fullname, _, architecture = name.partition("/")
        parts = fullname.split("+")
        if len(parts) != 3 or not all(parts) or "/" in architecture:
            raise InvalidPackageName(
                f"Invalid package name {name!r}: expected group+package+version[/architecture]"
            )
        group, package, version = parts
        return cls(
            fullname=fullname,
            group=group,
            package=package,
            version=version,
            architecture=architecture or None,
        )


@dataclass(frozen=True)
class ProviderConfig:
    """Everything one reconciliation call needs to know."""

    name: PackageName
    prefix: str = DEFAULT_PREFIX
    architecture: str = DEFAULT_ARCHITECTURE
    user: str = DEFAULT_USER
    repository: str = DEFAULT_REPOSITORY
    server: str = DEFAULT_SERVER
    server_path: str = DEFAULT_SERVER_PATH
    cleanup_script: str = DEFAULT_CLEANUP_SCRIPT

    @classmethod
    def resolve(
        cls,
        name: str,
        options: InstallOptions | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "ProviderConfig":
        """Combine defaults, environment and overrides.

        An architecture suffix on the resource name wins over the
        ``architecture`` option, which wins over the default.
        """
        options = options or InstallOptions()
        package_name = PackageName.parse(name)
        return cls(
            name=package_name,
            prefix=options.install_prefix or default_prefix(environ),
            architecture=(
                package_name.architecture or options.architecture or DEFAULT_ARCHITECTURE
            ),
            user=options.install_user or DEFAULT_USER,
            repository=options.repository or DEFAULT_REPOSITORY,
            server=options.server or DEFAULT_SERVER,
            server_path=options.server_path or DEFAULT_SERVER_PATH,
            cleanup_script=options.cmsrep_script or DEFAULT_CLEANUP_SCRIPT,
        )

    @property
    def fullname(self) -> str:
        return self.name.fullname

    @property
    def arch_dir(self) -> Path:
        return Path(self.prefix) / self.architecture

    @property
    def dotfile_dir(self) -> Path:
        return self.arch_dir / DOTFILE_DIR

    @property
    def marker_path(self) -> Path:
        """Sentinel recording that we believe the package is installed."""
        return self.dotfile_dir / f"{MARKER_PREFIX}{self.fullname}"

    @property
    def cleanup_script_path(self) -> Path:
        return self.dotfile_dir / self.cleanup_script

    @property
    def installed_init_path(self) -> Path:
        """Init script that only exists once the package files are in place."""
        return (
            self.arch_dir
            / self.name.group
            / self.name.package
            / self.name.version
            / "etc"
            / "profile.d"
            / "init.sh"
        )

    @property
    def package_db_dir(self) -> Path:
        return self.arch_dir / "var" / "lib" / "rpm"

    @property
    def bootstrap_script_path(self) -> Path:
        return Path(self.prefix) / f"bootstrap-{self.architecture}.sh"

    @property
    def apt_init_glob(self) -> str:
        """Glob, relative to ``arch_dir``, for the apt environment init script."""
        return "external/apt/*/etc/profile.d/init.sh"

    @property
    def bootstrap_url(self) -> str:
        return f"{self.server}/{self.server_path}/bootstrap.sh"

    @property
    def cleanup_script_url(self) -> str:
        return f"{self.server}/{self.cleanup_script}"
