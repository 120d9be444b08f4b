"""
Tests for Android project inspection.
"""

import os
import time

import pytest

from droidpanel.android.project import (
    AndroidProjectLayout,
    detect_modules,
    find_latest_apk,
    parse_main_activity,
    parse_package_name,
)


@pytest.mark.unit
class TestParsePackageName:

    def test_kotlin_dsl_namespace(self):
        assert parse_package_name('android {\n    namespace = "com.example.app"\n}') == "com.example.app"

    def test_groovy_namespace(self):
        assert parse_package_name("android {\n    namespace 'com.example.groovy'\n}") == "com.example.groovy"

    def test_namespace_preferred_over_application_id(self):
        text = 'defaultConfig { applicationId = "com.example.store" }\nnamespace = "com.example.app"'
        assert parse_package_name(text) == "com.example.app"

    def test_application_id_fallback(self):
        assert parse_package_name('defaultConfig {\n    applicationId "com.legacy"\n}') == "com.legacy"

    def test_missing(self):
        assert parse_package_name("plugins { id 'com.android.application' }") is None


@pytest.mark.unit
class TestParseMainActivity:

    @pytest.mark.parametrize("name", [".MainActivity", "MainActivity", "com.example.ui.MainActivity"])
    def test_forms(self, name):
        manifest = f'<activity android:name="{name}" android:exported="true" />'
        assert parse_main_activity(manifest) == name

    def test_other_activities_ignored(self):
        manifest = '<activity android:name=".SettingsActivity" />\n<activity android:name=".MainActivity" />'
        assert parse_main_activity(manifest) == ".MainActivity"

    def test_missing(self):
        assert parse_main_activity('<activity android:name=".HomeActivity" />') is None


@pytest.mark.unit
class TestDetectModules:

    def test_detects_modules_with_build_files(self, android_project):
        assert detect_modules(android_project) == ["app", "lib"]

    def test_missing_or_empty_path(self, temp_dir):
        assert detect_modules(temp_dir / "missing") == []
        assert detect_modules("") == []


@pytest.mark.unit
class TestFindLatestApk:

    def test_newest_apk_wins(self, temp_dir):
        old = temp_dir / "old.apk"
        new = temp_dir / "new.apk"
        old.write_bytes(b"a")
        new.write_bytes(b"b")
        (temp_dir / "notes.txt").write_text("x")
        now = time.time()
        os.utime(old, (now - 100, now - 100))
        os.utime(new, (now, now))

        assert find_latest_apk(temp_dir) == new

    def test_no_apk(self, temp_dir):
        assert find_latest_apk(temp_dir) is None
        assert find_latest_apk(temp_dir / "missing") is None


@pytest.mark.unit
class TestAndroidProjectLayout:

    def test_reads_package_and_activity(self, android_project):
        layout = AndroidProjectLayout(android_project)

        assert layout.build_file.name == "build.gradle.kts"
        assert layout.package_name() == "com.example.myapp"
        assert layout.main_activity() == ".MainActivity"

    def test_missing_module_files(self, android_project):
        layout = AndroidProjectLayout(android_project, module="missing")

        assert layout.build_file is None
        assert layout.package_name() is None
        assert layout.main_activity() is None

    def test_apk_search_dir(self, android_project):
        layout = AndroidProjectLayout(android_project)

        assert layout.apk_search_dir("debug") == android_project / "app" / "build" / "outputs" / "apk" / "debug"
        assert layout.apk_search_dir("release") == android_project / "app" / "release"

    def test_release_artifacts(self, android_project):
        artifacts = AndroidProjectLayout(android_project).release_artifacts()
        outputs = android_project / "app" / "build" / "outputs" / "apk" / "release"

        assert artifacts.unsigned == outputs / "app-release-unsigned.apk"
        assert artifacts.aligned == outputs / "app-release-aligned.apk"
        assert artifacts.signed == android_project / "app" / "release" / "app-release.apk"
        assert artifacts.idsig.name == "app-release.apk.idsig"
        assert artifacts.release_dir == android_project / "app" / "release"
        assert artifacts.signed not in artifacts.intermediates
        assert artifacts.unsigned not in artifacts.stale_outputs
