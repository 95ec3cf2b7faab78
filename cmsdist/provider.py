"""Package provider: install, remove and query CMS distribution packages.

The provider is created once per managed package. ``query`` does not only
read state: the ``PKG_<fullname>`` marker is brought in line with the
package's installed files before it returns.
"""

import logging
import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

from cmsdist.bootstrap import bootstrap, ensure_cleanup_script
from cmsdist.config import InstallOptions, ProviderConfig
from cmsdist.errors import InstallError, UninstallError
from cmsdist.utils import as_user, clean_environment, run

logger = logging.getLogger("cmsdist")

# The package system tracks presence only, so every installed package reports this
INSTALLED_VERSION: Final[str] = "1.0"

# Positional arguments: $1 architecture dir, $2 package, $3 marker
INSTALL_SCRIPT: Final[str] = (
    'source "$1"/external/apt/*/etc/profile.d/init.sh 2>&1; '
    "apt-get update; "
    'apt-get install -y "$2" 2>&1 && touch "$3" && apt-get clean -y'
)

# Positional arguments: $1 architecture dir, $2 package, $3 marker, $4 cleanup script
UNINSTALL_SCRIPT: Final[str] = (
    'source "$1"/external/apt/*/etc/profile.d/init.sh 2>&1; '
    "apt-get update; "
    'apt-get remove -y "$2" 2>&1; '
    'rm -f "$3"; perl "$4"'
)


@dataclass(frozen=True)
class PackageResource:
    """A managed package as declared to the host runtime."""

    name: str
    install_options: Any = None

    @property
    def options(self) -> InstallOptions:
        return InstallOptions.from_raw(self.install_options)

    def config(self, environ: Mapping[str, str] | None = None) -> ProviderConfig:
        return ProviderConfig.resolve(self.name, self.options, environ)


@dataclass(frozen=True)
class PackageStatus:
    """Result of a query for an installed package."""

    name: str
    status: str = INSTALLED_VERSION

    def as_dict(self) -> dict[str, str]:
        return {"status": self.status, "name": self.name}


class CmsdistProvider:
    """CMS packages via apt-get."""

    FEATURES: Final[frozenset[str]] = frozenset(
        {"unversionable", "package_settings", "install_options"}
    )

    def __init__(self, resource: PackageResource, environ: Mapping[str, str] | None = None):
        environ = os.environ if environ is None else environ
        self.resource = resource
        self.config = resource.config(environ)
        self.env = clean_environment(environ)

    @classmethod
    def has_feature(cls, feature: str) -> bool:
        return feature in cls.FEATURES

    @classmethod
    def instances(cls) -> list["CmsdistProvider"]:
        """Enumerating installed packages is not supported."""
        return []

    def _run_as_user(self, script: str, *args: str) -> subprocess.CompletedProcess[str]:
        return run(
            [*as_user(self.config.user), "bash", "-c", script, "cmsdist", *args],
            check=False,
            merge_output=True,
            env=self.env,
        )

    def _update_marker(self, present: bool) -> None:
        marker = str(self.config.marker_path)
        cmd = ["touch", marker] if present else ["rm", "-f", marker]
        result = run([*as_user(self.config.user), *cmd], check=False, capture=True)
        if result.returncode != 0:
            logger.warning(
                "Could not %s marker %s: %s",
                "create" if present else "remove",
                marker,
                (result.stderr or "").strip(),
            )

    def install(self) -> int:
        """Install the package, bootstrapping the environment first if needed."""
        config = self.config
        bootstrap(config, self.env)
        ensure_cleanup_script(config)

        logger.info("Installing %s for %s", config.fullname, config.architecture)
        result = self._run_as_user(
            INSTALL_SCRIPT,
            str(config.arch_dir),
            config.fullname,
            str(config.marker_path),
        )
        logger.debug("%s", result.stdout)
        if result.returncode != 0:
            raise InstallError(
                f"Could not install package. {result.stdout}",
                returncode=result.returncode,
                output=result.stdout,
            )
        return result.returncode

    def uninstall(self) -> int:
        """Remove the package and purge what apt-get leaves behind."""
        config = self.config
        cleanup_script = ensure_cleanup_script(config)

        logger.info("Removing %s for %s", config.fullname, config.architecture)
        result = self._run_as_user(
            UNINSTALL_SCRIPT,
            str(config.arch_dir),
            config.fullname,
            str(config.marker_path),
            str(cleanup_script),
        )
        logger.debug("%s", result.stdout)
        if result.returncode != 0:
            raise UninstallError(
                f"Could not remove package. {result.stdout}",
                returncode=result.returncode,
                output=result.stdout,
            )
        return result.returncode

    def query(self) -> PackageStatus | None:
        """Report whether the package is installed, repairing the marker."""
        config = self.config
        logger.debug(
            "query invoked with %s %s %s (overrides: %s)",
            config.prefix,
            config.architecture,
            config.user,
            self.resource.options.as_dict(),
        )
        bootstrap(config, self.env)
        ensure_cleanup_script(config)

        marker_present = config.marker_path.exists()
        if not config.installed_init_path.exists():
            if marker_present:
                logger.debug("Removing stale marker for %s", config.fullname)
                self._update_marker(False)
            return None

        if not marker_present:
            logger.debug("Recording marker for %s", config.fullname)
            self._update_marker(True)
        return PackageStatus(name=self.resource.name)
