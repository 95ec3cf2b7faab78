"""Tests for config module."""

import logging
from pathlib import Path

import pytest

from cmsdist.config import (
    DEFAULT_ARCHITECTURE,
    DEFAULT_CLEANUP_SCRIPT,
    DEFAULT_PREFIX,
    DEFAULT_REPOSITORY,
    DEFAULT_SERVER,
    DEFAULT_SERVER_PATH,
    DEFAULT_USER,
    InstallOptions,
    PackageName,
    ProviderConfig,
    default_prefix,
)
from cmsdist.errors import InvalidPackageName


class TestDefaultPrefix:
    """Tests for default_prefix function."""

    def test_opt_cms(self):
        """Test that /opt/cms is used without boxen."""
        assert default_prefix({}) == "/opt/cms"

    def test_boxen_home(self):
        """Test that a boxen Homebrew path wins when BOXEN_HOME is set."""
        assert default_prefix({"BOXEN_HOME": "/opt/boxen"}) == "/opt/boxen/homebrew"

    def test_empty_boxen_home(self):
        """Test that an empty BOXEN_HOME is ignored."""
        assert default_prefix({"BOXEN_HOME": ""}) == DEFAULT_PREFIX


class TestInstallOptions:
    """Tests for InstallOptions shapes."""

    def test_from_mapping(self):
        """Test that recognized keys are taken from a mapping."""
        options = InstallOptions.from_mapping({"install_user": "builduser", "server": "example"})
        assert options.install_user == "builduser"
        assert options.server == "example"
        assert options.install_prefix is None

    def test_from_mapping_ignores_unknown_keys(self, caplog):
        """Test that unknown keys are dropped with a debug notice."""
        caplog.set_level(logging.DEBUG, logger="cmsdist")
        options = InstallOptions.from_mapping({"colour": "blue"})
        assert options == InstallOptions()
        assert "Ignoring unknown install option: colour" in caplog.text

    def test_from_mapping_empty_values_are_absent(self):
        """Test that empty strings and None fall back to defaults."""
        options = InstallOptions.from_mapping({"install_user": "", "server": None})
        assert options == InstallOptions()

    def test_from_list_first_wins(self):
        """Test that only the first list element is used."""
        options = InstallOptions.from_list(
            [{"install_user": "first"}, {"install_user": "second"}]
        )
        assert options.install_user == "first"

    def test_from_empty_list(self):
        """Test that an empty list means no overrides."""
        assert InstallOptions.from_list([]) == InstallOptions()

    def test_from_list_of_strings(self):
        """Test that a list whose first entry is not a mapping means no overrides."""
        assert InstallOptions.from_list(["--force"]) == InstallOptions()

    @pytest.mark.parametrize("value", [None, "install_user=x", 42])
    def test_from_raw_malformed(self, value, caplog):
        """Test that malformed options yield the empty map with a debug notice."""
        caplog.set_level(logging.DEBUG, logger="cmsdist")
        assert InstallOptions.from_raw(value) == InstallOptions()
        assert "install_options not specified. Using default." in caplog.text

    def test_from_raw_dispatch(self):
        """Test that lists and mappings are both accepted."""
        assert InstallOptions.from_raw({"repository": "x"}).repository == "x"
        assert InstallOptions.from_raw([{"repository": "y"}]).repository == "y"

    def test_as_dict(self):
        """Test that only set options are returned."""
        options = InstallOptions(architecture="arch", cmsrep_script="clean.pl")
        assert options.as_dict() == {"architecture": "arch", "cmsrep_script": "clean.pl"}


class TestPackageName:
    """Tests for PackageName parsing."""

    def test_parse(self):
        """Test a name without architecture."""
        name = PackageName.parse("cms+cmssw+CMSSW_7_1_0")
        assert name.fullname == "cms+cmssw+CMSSW_7_1_0"
        assert (name.group, name.package, name.version) == ("cms", "cmssw", "CMSSW_7_1_0")
        assert name.architecture is None

    def test_parse_with_architecture(self):
        """Test that the /architecture suffix is split off."""
        name = PackageName.parse("group1+pkgA+1.2.3/customarch")
        assert name.fullname == "group1+pkgA+1.2.3"
        assert name.architecture == "customarch"

    def test_parse_trailing_slash(self):
        """Test that an empty architecture suffix is no override."""
        assert PackageName.parse("a+b+c/").architecture is None

    @pytest.mark.parametrize(
        "name", ["pkgA", "a+b", "a+b+c+d", "a++c", "+b+c/arch", "a+b+c/x/y"]
    )
    def test_parse_invalid(self, name):
        """Test that malformed names are rejected."""
        with pytest.raises(InvalidPackageName):
            PackageName.parse(name)

    def test_parse_nested_architecture(self):
        """Test that a second slash is rejected instead of nesting the arch dir."""
        with pytest.raises(InvalidPackageName, match="a\\+b\\+c/x/y"):
            PackageName.parse("a+b+c/x/y")

    def test_invalid_is_value_error(self):
        """Test that InvalidPackageName is also a ValueError."""
        with pytest.raises(ValueError):
            PackageName.parse("nope")


class TestProviderConfig:
    """Tests for ProviderConfig resolution."""

    def test_defaults(self):
        """Test that every field falls back to its default."""
        config = ProviderConfig.resolve("a+b+c", InstallOptions(), environ={})
        assert config.prefix == DEFAULT_PREFIX
        assert config.architecture == DEFAULT_ARCHITECTURE
        assert config.user == DEFAULT_USER
        assert config.repository == DEFAULT_REPOSITORY
        assert config.server == DEFAULT_SERVER
        assert config.server_path == DEFAULT_SERVER_PATH
        assert config.cleanup_script == DEFAULT_CLEANUP_SCRIPT

    def test_defaults_without_options(self):
        """Test that options may be omitted."""
        config = ProviderConfig.resolve("a+b+c", environ={})
        assert config.user == "cmsbuild"

    def test_name_architecture_and_user_override(self):
        """Test the architecture suffix and install_user override together."""
        options = InstallOptions.from_raw({"install_user": "builduser"})
        config = ProviderConfig.resolve("group1+pkgA+1.2.3/customarch", options, environ={})
        assert config.architecture == "customarch"
        assert config.user == "builduser"
        assert config.prefix == "/opt/cms"
        assert config.repository == "cms"
        assert config.server == "cmsrep.cern.ch"
        assert config.server_path == "cmssw/cms"
        assert config.cleanup_script == "cmsrpm_cleanup_v2.pl"

    def test_name_architecture_beats_option(self):
        """Test that the name suffix wins over the architecture option."""
        options = InstallOptions(architecture="optarch")
        config = ProviderConfig.resolve("a+b+c/namearch", options, environ={})
        assert config.architecture == "namearch"

    def test_architecture_option(self):
        """Test that the architecture option wins over the default."""
        options = InstallOptions(architecture="optarch")
        config = ProviderConfig.resolve("a+b+c", options, environ={})
        assert config.architecture == "optarch"

    def test_all_overrides(self):
        """Test that every supplied option overrides its default."""
        options = InstallOptions.from_raw(
            [
                {
                    "install_prefix": "/srv/cms",
                    "architecture": "arch",
                    "install_user": "u",
                    "repository": "r",
                    "server": "s",
                    "server_path": "p",
                    "cmsrep_script": "c.pl",
                }
            ]
        )
        config = ProviderConfig.resolve("a+b+c", options, environ={"BOXEN_HOME": "/boxen"})
        assert (
            config.prefix,
            config.architecture,
            config.user,
            config.repository,
            config.server,
            config.server_path,
            config.cleanup_script,
        ) == ("/srv/cms", "arch", "u", "r", "s", "p", "c.pl")

    def test_boxen_prefix(self):
        """Test that the boxen prefix is used without an install_prefix option."""
        config = ProviderConfig.resolve("a+b+c", environ={"BOXEN_HOME": "/boxen"})
        assert config.prefix == "/boxen/homebrew"

    def test_paths(self):
        """Test derived paths and URLs."""
        config = ProviderConfig.resolve(
            "cms+pkg+1.0/arch", InstallOptions(install_prefix="/p"), environ={}
        )
        assert config.arch_dir == Path("/p/arch")
        assert config.dotfile_dir == Path("/p/arch/.cmsdistrc")
        assert config.marker_path == Path("/p/arch/.cmsdistrc/PKG_cms+pkg+1.0")
        assert config.cleanup_script_path == Path("/p/arch/.cmsdistrc/cmsrpm_cleanup_v2.pl")
        assert config.installed_init_path == Path("/p/arch/cms/pkg/1.0/etc/profile.d/init.sh")
        assert config.package_db_dir == Path("/p/arch/var/lib/rpm")
        assert config.bootstrap_script_path == Path("/p/bootstrap-arch.sh")
        assert config.bootstrap_url == "cmsrep.cern.ch/cmssw/cms/bootstrap.sh"
        assert config.cleanup_script_url == "cmsrep.cern.ch/cmsrpm_cleanup_v2.pl"

    def test_config_is_frozen(self):
        """Test that config is immutable."""
        config = ProviderConfig.resolve("a+b+c", environ={})
        with pytest.raises(AttributeError):
            config.user = "root"  # type: ignore[misc]
