"""Command-line entry point for the cmsdist provider."""

import click

from cmsdist.errors import CmsdistError
from cmsdist.provider import CmsdistProvider, PackageResource
from cmsdist.utils import setup_logging


def parse_options(values: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated KEY=VALUE arguments into an install options mapping."""
    options: dict[str, str] = {}
    for value in values:
        key, sep, option = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {value!r}", param_hint="--option")
        options[key] = option
    return options


def make_provider(name: str, option: tuple[str, ...]) -> CmsdistProvider:
    """Build the provider for one package, reporting bad names as usage errors."""
    resource = PackageResource(name=name, install_options=parse_options(option))
    try:
        return CmsdistProvider(resource)
    except CmsdistError as error:
        raise click.BadParameter(str(error), param_hint="NAME") from error


def option_argument(func):
    return click.option(
        "--option",
        "-o",
        multiple=True,
        metavar="KEY=VALUE",
        help=(
            "Install option override (install_prefix, architecture, install_user, "
            "repository, server, server_path, cmsrep_script). Repeatable."
        ),
    )(func)


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Install, remove and query CMS distribution packages.

    NAME is group+package+version, optionally followed by /architecture.
    """
    setup_logging(verbose)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command()
@click.argument("name")
@option_argument
def install(name: str, option: tuple[str, ...]) -> None:
    """Install a package."""
    provider = make_provider(name, option)
    try:
        provider.install()
    except CmsdistError as error:
        click.echo(f"Error: {error}", err=True)
        raise SystemExit(1) from error
    click.echo(f"Installed {name}")


@main.command()
@click.argument("name")
@option_argument
def uninstall(name: str, option: tuple[str, ...]) -> None:
    """Remove a package."""
    provider = make_provider(name, option)
    try:
        provider.uninstall()
    except CmsdistError as error:
        click.echo(f"Error: {error}", err=True)
        raise SystemExit(1) from error
    click.echo(f"Removed {name}")


@main.command()
@click.argument("name")
@option_argument
def query(name: str, option: tuple[str, ...]) -> None:
    """Show whether a package is installed."""
    provider = make_provider(name, option)
    try:
        status = provider.query()
    except CmsdistError as error:
        click.echo(f"Error: {error}", err=True)
        raise SystemExit(1) from error
    if status is None:
        click.echo(f"{name} absent")
    else:
        click.echo(f"{status.name} {status.status}")


if __name__ == "__main__":
    main()
