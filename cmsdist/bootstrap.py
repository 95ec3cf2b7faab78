"""Bootstrap of the CMS apt environment and the cleanup script it needs.

Both entry points are idempotent: once the environment (or the script) is in
place they never fetch or set anything up again. ``bootstrap`` still repairs
ownership of the package database on every call.
"""

import logging
import subprocess
from collections.abc import Mapping
from pathlib import Path

from cmsdist.config import ProviderConfig
from cmsdist.errors import (
    BootstrapError,
    BootstrapOwnershipError,
    CommandError,
    DownloadError,
)
from cmsdist.utils import as_user, ensure_dir, run

logger = logging.getLogger("cmsdist")

# Sources the apt init script given as $1, then looks for apt-get whatever the
# init script returned
APT_CHECK_SCRIPT = 'source "$1" >/dev/null 2>&1; command -v apt-get >/dev/null 2>&1'


def find_init_script(config: ProviderConfig) -> Path | None:
    """Return the apt environment init script for the architecture, if any."""
    if not config.arch_dir.is_dir():
        return None
    matches = sorted(config.arch_dir.glob(config.apt_init_glob))
    return matches[0] if matches else None


def is_bootstrapped(config: ProviderConfig, env: Mapping[str, str] | None = None) -> bool:
    """Check whether apt-get is reachable inside the architecture's environment."""
    logger.debug("Checking if %s bootstrapped in %s", config.architecture, config.prefix)
    init_script = find_init_script(config)
    if init_script is None:
        return False
    result = run(
        ["bash", "-c", APT_CHECK_SCRIPT, "cmsdist", str(init_script)],
        check=False,
        capture=True,
        env=env,
    )
    return result.returncode == 0


def download(
    url: str,
    destination: Path,
    *,
    user: str | None = None,
    error_class: type[CommandError] = DownloadError,
) -> None:
    """Fetch ``url`` into ``destination``, optionally as another user."""
    prefix = as_user(user) if user else []
    result = run(
        [*prefix, "curl", "-fsSL", "--insecure", "-o", str(destination), url],
        check=False,
        capture=True,
    )
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise error_class(
            f"Failed to download {url}: {stderr}",
            returncode=result.returncode,
            output=stderr,
        )


def prepare_prefix(config: ProviderConfig) -> None:
    """Create the install prefix and hand it to the install user."""
    logger.debug("Creating %s and assigning it to %s", config.prefix, config.user)
    try:
        ensure_dir(config.prefix)
        run(["chown", config.user, config.prefix], capture=True)
    except (OSError, subprocess.CalledProcessError) as error:
        logger.warning(
            "Unable to create / find installation area. Please check your install_options."
        )
        raise BootstrapOwnershipError(
            f"Could not prepare {config.prefix} for user {config.user}: {error}"
        ) from error


def repair_ownership(config: ProviderConfig) -> None:
    """Give the package database back to the install user."""
    result = run(
        ["chown", "-R", config.user, str(config.package_db_dir)],
        check=False,
        capture=True,
    )
    if result.returncode != 0:
        logger.warning(
            "Could not repair ownership of %s: %s",
            config.package_db_dir,
            (result.stderr or "").strip(),
        )


def bootstrap(config: ProviderConfig, env: Mapping[str, str] | None = None) -> None:
    """Bootstrap the CMS environment for ``config.architecture`` if needed."""
    if is_bootstrapped(config, env):
        repair_ownership(config)
        logger.debug("Bootstrap previously done.")
        return

    prepare_prefix(config)

    script = config.bootstrap_script_path
    logger.debug("Fetching bootstrap for %s from %s", config.repository, config.bootstrap_url)
    download(config.bootstrap_url, script, error_class=BootstrapError)

    logger.info("Installing CMS bootstrap for %s in %s", config.architecture, config.prefix)
    result = run(
        [
            *as_user(config.user),
            "sh",
            "-x",
            str(script),
            "setup",
            "-path",
            config.prefix,
            "-arch",
            config.architecture,
            "-server",
            config.server,
            "-server-path",
            config.server_path,
            "-assume-yes",
        ],
        check=False,
        merge_output=True,
        env=env,
    )
    logger.debug("%s", result.stdout)
    if result.returncode != 0:
        raise BootstrapError(
            f"Bootstrap of {config.architecture} failed. {result.stdout}",
            returncode=result.returncode,
            output=result.stdout,
        )
    logger.info("Bootstrap completed")


def ensure_cleanup_script(config: ProviderConfig) -> Path:
    """Download the cleanup script unless it is already present."""
    script = config.cleanup_script_path
    if script.exists():
        return script

    user_prefix = as_user(config.user)
    result = run(
        [*user_prefix, "mkdir", "-p", str(config.dotfile_dir)],
        check=False,
        capture=True,
    )
    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        raise DownloadError(
            f"Could not create {config.dotfile_dir}: {stderr}",
            returncode=result.returncode,
            output=stderr,
        )

    download(config.cleanup_script_url, script, user=config.user)
    logger.debug("Downloaded %s", config.cleanup_script_url)
    return script
