"""
Android project inspection.

Pure parsers for Gradle build files and manifests plus the on-disk layout of
a module's build outputs.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

BUILD_FILE_NAMES = ("build.gradle", "build.gradle.kts")

_NAMESPACE_PATTERN = re.compile(r"""namespace\s*=?\s*['"]([^'"]+)['"]""")
_APPLICATION_ID_PATTERN = re.compile(r"""applicationId\s*=?\s*['"]([^'"]+)['"]""")
_MAIN_ACTIVITY_PATTERN = re.compile(r'android:name="((?:[^"]*\.)?MainActivity)"')


def parse_package_name(build_file_text: str) -> Optional[str]:
    """The ``namespace`` of a module, falling back to its ``applicationId``."""
    for pattern in (_NAMESPACE_PATTERN, _APPLICATION_ID_PATTERN):
        match = pattern.search(build_file_text)
        if match:
            return match.group(1)
    return None


def parse_main_activity(manifest_text: str) -> Optional[str]:
    match = _MAIN_ACTIVITY_PATTERN.search(manifest_text)
    return match.group(1) if match else None


def detect_modules(project_dir: Union[str, Path]) -> List[str]:
    """Names of the sub-directories that carry a Gradle build file, sorted."""
    root = Path(project_dir)
    if not str(project_dir) or not root.is_dir():
        return []
    modules = []
    for entry in root.iterdir():
        if entry.is_dir() and any((entry / name).is_file() for name in BUILD_FILE_NAMES):
            modules.append(entry.name)
    return sorted(modules)


def find_latest_apk(directory: Union[str, Path]) -> Optional[Path]:
    """The most recently modified ``.apk`` directly inside ``directory``."""
    directory = Path(directory)
    if not directory.is_dir():
        return None
    apks = [path for path in directory.iterdir() if path.suffix == ".apk" and path.is_file()]
    if not apks:
        return None
    return max(apks, key=lambda path: path.stat().st_mtime)


@dataclass(frozen=True)
class ReleaseArtifacts:
    """Files produced by the release build and sign pipeline."""

    unsigned: Path
    aligned: Path
    signed: Path
    idsig: Path

    @property
    def release_dir(self) -> Path:
        return self.signed.parent

    @property
    def intermediates(self) -> List[Path]:
        return [self.unsigned, self.aligned]

    @property
    def stale_outputs(self) -> List[Path]:
        """Outputs of a previous run that must not survive into a new one."""
        return [self.aligned, self.signed, self.idsig]


@dataclass(frozen=True)
class AndroidProjectLayout:
    """
    Paths of one application module inside an Android project.
    """

    project_dir: Path
    module: str = "app"

    @property
    def module_dir(self) -> Path:
        return self.project_dir / self.module

    @property
    def build_file(self) -> Optional[Path]:
        for name in BUILD_FILE_NAMES:
            candidate = self.module_dir / name
            if candidate.is_file():
                return candidate
        return None

    @property
    def manifest_path(self) -> Path:
        return self.module_dir / "src" / "main" / "AndroidManifest.xml"

    @property
    def apk_output_dir(self) -> Path:
        return self.module_dir / "build" / "outputs" / "apk"

    def apk_search_dir(self, build_type: str) -> Path:
        """Where an installable APK of ``build_type`` is found."""
        if build_type == "release":
            return self.module_dir / "release"
        return self.apk_output_dir / build_type

    def release_artifacts(self) -> ReleaseArtifacts:
        release_outputs = self.apk_output_dir / "release"
        signed = self.module_dir / "release" / "app-release.apk"
        return ReleaseArtifacts(
            unsigned=release_outputs / "app-release-unsigned.apk",
            aligned=release_outputs / "app-release-aligned.apk",
            signed=signed,
            idsig=signed.with_name(signed.name + ".idsig"),
        )

    def package_name(self) -> Optional[str]:
        build_file = self.build_file
        if build_file is None:
            logger.warning(f"No build file in {self.module_dir}")
            return None
        return parse_package_name(build_file.read_text(encoding="utf-8"))

    def main_activity(self) -> Optional[str]:
        try:
            return parse_main_activity(self.manifest_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning(f"Manifest not found: {self.manifest_path}")
            return None
