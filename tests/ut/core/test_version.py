"""版本号 / 版本范围 / 目标框架解析测试"""

import pytest

from coherence.core.exceptions import InvalidVersionError
from coherence.core.version import NuGetVersion, TargetFramework, min_version_of


class TestNuGetVersion:
    def test_short_forms_equal(self) -> None:
        assert NuGetVersion.parse("1.0") == NuGetVersion.parse("1.0.0")
        assert NuGetVersion.parse("1.0.0") == NuGetVersion.parse("1.0.0.0")

    def test_label_case_insensitive(self) -> None:
        assert NuGetVersion.parse("1.0.0-RC1") == NuGetVersion.parse("1.0.0-rc1")

    def test_metadata_ignored(self) -> None:
        assert NuGetVersion.parse("1.0.0+abc") == NuGetVersion.parse("1.0.0")

    def test_prerelease_before_release(self) -> None:
        assert NuGetVersion.parse("1.0.0-beta") < NuGetVersion.parse("1.0.0")
        assert NuGetVersion.parse("1.0.0-alpha") < NuGetVersion.parse("1.0.0-beta")

    def test_numeric_label_parts(self) -> None:
        assert NuGetVersion.parse("1.0.0-rc.2") < NuGetVersion.parse("1.0.0-rc.10")

    def test_release_ordering(self) -> None:
        versions = ["2.0.0", "1.10.0", "1.2.0", "1.2.0-rc1"]
        ordered = sorted(NuGetVersion.parse(v) for v in versions)
        assert [v.normalized() for v in ordered] == ["1.2.0-rc1", "1.2.0", "1.10.0", "2.0.0"]

    def test_normalized(self) -> None:
        assert NuGetVersion.parse("1.0").normalized() == "1.0.0"
        assert NuGetVersion.parse("1.0.0.5").normalized() == "1.0.0.5"
        assert NuGetVersion.parse("1.0.0-RC1").normalized() == "1.0.0-rc1"

    def test_str_keeps_original(self) -> None:
        assert str(NuGetVersion.parse("1.0-RC1")) == "1.0-RC1"

    def test_is_prerelease(self) -> None:
        assert NuGetVersion.parse("1.0.0-beta").is_prerelease
        assert not NuGetVersion.parse("1.0.0").is_prerelease

    @pytest.mark.parametrize("text", ["", "abc", "1.0.0.0.0", "1.0-", "v1.0"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(InvalidVersionError, match="无法解析的版本号"):
            NuGetVersion.parse(text)

    def test_invalid_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            NuGetVersion.parse("x.y")


class TestMinVersionOf:
    def test_plain_version(self) -> None:
        assert min_version_of("1.0.0") == NuGetVersion.parse("1.0.0")

    def test_inclusive_range(self) -> None:
        assert min_version_of("[1.0.0, 2.0.0)") == NuGetVersion.parse("1.0.0")

    def test_exact_range(self) -> None:
        assert min_version_of("[1.2.3]") == NuGetVersion.parse("1.2.3")

    def test_open_lower_bound(self) -> None:
        assert min_version_of("(, 2.0.0]") is None

    def test_empty(self) -> None:
        assert min_version_of("") is None
        assert min_version_of("   ") is None

    def test_bad_bracket(self) -> None:
        with pytest.raises(InvalidVersionError, match="版本范围格式错误"):
            min_version_of("[1.0.0, 2.0.0")

    def test_bad_lower_bound(self) -> None:
        with pytest.raises(InvalidVersionError):
            min_version_of("[abc, )")


class TestTargetFramework:
    def test_empty_is_none(self) -> None:
        assert TargetFramework.parse("") is None
        assert TargetFramework.parse("  ") is None

    def test_short_names(self) -> None:
        assert TargetFramework.parse("netstandard1.3") == TargetFramework(".NETStandard", "1.3")
        assert TargetFramework.parse("net45") == TargetFramework(".NETFramework", "45")
        assert TargetFramework.parse("netcore50") == TargetFramework(".NETCore", "50")
        assert TargetFramework.parse("dnxcore50") == TargetFramework("DNXCore", "50")

    def test_net5_is_core_app(self) -> None:
        assert TargetFramework.parse("net5.0").identifier == ".NETCoreApp"

    def test_full_form(self) -> None:
        fw = TargetFramework.parse(".NETPortable,Version=v4.5,Profile=Profile259")
        assert fw is not None
        assert fw.identifier == ".NETPortable"
        assert fw.version == "4.5"
        assert fw.profile == "Profile259"
        assert fw.is_pcl

    def test_portable_short_name(self) -> None:
        fw = TargetFramework.parse("portable-net45+win8")
        assert fw is not None
        assert fw.is_pcl
        assert fw.profile == "net45+win8"

    def test_long_identifier_kept(self) -> None:
        fw = TargetFramework.parse(".NETFramework4.5")
        assert fw is not None
        assert fw.identifier == ".NETFramework"
        assert fw.version == "4.5"

    def test_matches_case_insensitive(self) -> None:
        fw = TargetFramework.parse("netcore50")
        assert fw is not None
        assert fw.matches(frozenset({".netcore"}))
        assert not fw.matches(frozenset({".netstandard"}))

    def test_str(self) -> None:
        fw = TargetFramework.parse("netstandard1.3")
        assert str(fw) == ".NETStandard,Version=v1.3"
