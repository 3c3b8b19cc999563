"""Tests for classifier.py - tracked vs ignored files and report groups."""

import os

from coverwatch.classifier import FileClassifier
from coverwatch.config import CoverageConfig
from coverwatch.models import Classification


class TestTracking:
    def test_file_under_root_is_tracked(self, project):
        classifier = FileClassifier(root=str(project))
        assert classifier.classify(str(project / "a.py")) is Classification.TRACKED
        assert classifier.is_tracked(str(project / "lib" / "c.py"))

    def test_file_outside_root_is_ignored(self, project, tmp_path):
        classifier = FileClassifier(root=str(project))
        assert classifier.classify(str(tmp_path / "other.py")) is Classification.IGNORED

    def test_sibling_with_common_prefix_is_not_under_root(self, project):
        classifier = FileClassifier(root=str(project))
        assert not classifier.is_tracked(str(project) + "2/a.py")

    def test_ignore_pattern_is_substring_match(self, project):
        classifier = FileClassifier(root=str(project), ignore=["vendor_cache"])
        assert not classifier.is_tracked(str(project / "vendor_cache" / "d.py"))
        assert classifier.is_ignored(str(project / "vendor_cache" / "d.py"))
        assert classifier.is_tracked(str(project / "a.py"))

    def test_ignore_patterns_are_literal(self, project):
        classifier = FileClassifier(root=str(project), ignore=["a.py"])
        # "." must not act as a regex wildcard
        assert classifier.is_tracked(str(project / "abpy.py"))
        assert not classifier.is_tracked(str(project / "a.py"))

    def test_third_party_needs_flag(self, project, third_party):
        path = str(third_party / "requests" / "api.py")
        off = FileClassifier(root=str(project), third_party_paths=[str(third_party)])
        on = FileClassifier(
            root=str(project), track_third_party=True, third_party_paths=[str(third_party)]
        )
        assert not off.is_tracked(path)
        assert on.is_tracked(path)

    def test_ignore_wins_over_third_party(self, project, third_party):
        classifier = FileClassifier(
            root=str(project),
            ignore=["requests"],
            track_third_party=True,
            third_party_paths=[str(third_party)],
        )
        assert not classifier.is_tracked(str(third_party / "requests" / "api.py"))

    def test_relative_root_is_absolutized(self, project, monkeypatch):
        monkeypatch.chdir(project)
        classifier = FileClassifier(root=".")
        assert classifier.is_tracked(os.path.join(str(project), "a.py"))


class TestGroups:
    def test_first_matching_group_wins(self, project):
        classifier = FileClassifier(
            root=str(project),
            groups={"Library": r"/lib/", "Everything": r"\.py$"},
        )
        assert classifier.group(str(project / "lib" / "c.py")) == "Library"
        assert classifier.group(str(project / "a.py")) == "Everything"

    def test_unmatched_file_has_no_group(self, project):
        classifier = FileClassifier(root=str(project), groups={"Library": r"/lib/"})
        assert classifier.group(str(project / "a.py")) is None

    def test_group_files_skips_ignored(self, project):
        classifier = FileClassifier(
            root=str(project), ignore=["vendor_cache"], groups={"Library": r"/lib/"}
        )
        grouped = classifier.group_files(
            [
                str(project / "a.py"),
                str(project / "lib" / "c.py"),
                str(project / "vendor_cache" / "d.py"),
            ]
        )
        assert grouped == {"": [str(project / "a.py")], "Library": [str(project / "lib" / "c.py")]}


class TestFromConfig:
    def test_third_party_tracking_lifts_package_dir_ignores(self, project, third_party):
        config = CoverageConfig(
            root=str(project),
            track_third_party=True,
            third_party_paths=[str(third_party)],
            store_type="memory",
        )
        classifier = FileClassifier.from_config(config)
        api = str(third_party / "requests" / "api.py")
        assert classifier.is_tracked(api)
        assert classifier.group(api) == "Third-party"
        assert classifier.group(str(project / "a.py")) == "App"

    def test_root_paths_are_tracked(self, tmp_path, project):
        release = tmp_path / "releases" / "2"
        config = CoverageConfig(root=str(project), root_paths=[str(release)], store_type="memory")
        classifier = FileClassifier.from_config(config)
        assert classifier.is_tracked(str(release / "a.py"))
        assert classifier.relative_key(str(release / "a.py")) == "a.py"

    def test_default_ignores_keep_site_packages_out(self, project, third_party):
        config = CoverageConfig(
            root=str(project), third_party_paths=[str(third_party)], store_type="memory"
        )
        classifier = FileClassifier.from_config(config)
        venv_file = str(project / ".venv" / "lib" / "site-packages" / "x.py")
        assert not classifier.is_tracked(venv_file)


class TestStoreKeys:
    def test_project_files_are_keyed_relative(self, project):
        classifier = FileClassifier(root=str(project))
        assert classifier.relative_key(str(project / "lib" / "c.py")) == os.path.join("lib", "c.py")
        assert classifier.absolute_path(os.path.join("lib", "c.py")) == str(project / "lib" / "c.py")

    def test_extra_roots_share_keys_with_the_project(self, tmp_path, project):
        old_release = tmp_path / "releases" / "1"
        classifier = FileClassifier(root=str(project), root_paths=[str(old_release)])
        old_file = str(old_release / "a.py")
        assert classifier.is_tracked(old_file)
        assert classifier.relative_key(old_file) == classifier.relative_key(str(project / "a.py"))
        assert classifier.absolute_path(classifier.relative_key(old_file)) == str(project / "a.py")

    def test_innermost_root_wins(self, project):
        lib = project / "lib"
        classifier = FileClassifier(root=str(project), root_paths=[str(lib)])
        assert classifier.relative_key(str(lib / "c.py")) == "c.py"

    def test_third_party_files_stay_absolute(self, project, third_party):
        classifier = FileClassifier(
            root=str(project), track_third_party=True, third_party_paths=[str(third_party)]
        )
        api = str(third_party / "requests" / "api.py")
        assert classifier.relative_key(api) == api
        assert classifier.absolute_path(api) == api

    def test_group_files_accepts_relative_keys(self, project):
        classifier = FileClassifier(root=str(project), groups={"Library": r"/lib/"})
        grouped = classifier.group_files(["a.py", os.path.join("lib", "c.py")])
        assert grouped == {"": ["a.py"], "Library": [os.path.join("lib", "c.py")]}
