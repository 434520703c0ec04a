"""Shared type definitions for web2desk.

This module contains enums, dataclasses and lookup tables shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class Framework(str, Enum):
    """Packaging framework wrapped around the web app."""

    ELECTRON = "electron"
    TAURI = "tauri"
    CAPACITOR = "capacitor"
    REACT_NATIVE = "react-native"


class TargetOS(str, Enum):
    """Operating system or mobile platform an installer is built for."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    ANDROID = "android"
    IOS = "ios"


class SourceType(str, Enum):
    """Where the web app comes from."""

    URL = "url"
    GITHUB = "github"
    ZIP = "zip"


class WrapperMode(str, Enum):
    """How the wrapper loads the app.

    webview loads the remote URL; pwa bundles a local placeholder page
    for offline use.
    """

    WEBVIEW = "webview"
    PWA = "pwa"


class BuildStatus(str, Enum):
    """Persisted status of a build.

    The client-only ``idle`` state is never stored.
    """

    PREPARING = "preparing"
    QUEUED = "queued"
    EXTRACTING = "extracting"
    BUILDING = "building"
    COMPLETED = "completed"
    FAILED = "failed"


class StrategyKind(str, Enum):
    """Orchestration path used to turn a build request into installers."""

    TEMPLATE_REPO = "template-repo"
    USER_REPO = "user-repo"
    SIMULATED = "simulated"
    PROJECT = "project"


SUPPORTED_PLATFORMS: dict[Framework, tuple[TargetOS, ...]] = {
    Framework.ELECTRON: (TargetOS.WINDOWS, TargetOS.MACOS, TargetOS.LINUX),
    Framework.TAURI: (TargetOS.WINDOWS, TargetOS.MACOS, TargetOS.LINUX),
    Framework.CAPACITOR: (TargetOS.ANDROID, TargetOS.IOS),
    Framework.REACT_NATIVE: (TargetOS.ANDROID, TargetOS.IOS),
}

# Installer types each OS is expected to produce
OUTPUT_FORMATS: dict[TargetOS, tuple[str, ...]] = {
    TargetOS.WINDOWS: ("exe", "msi"),
    TargetOS.MACOS: ("dmg", "pkg"),
    TargetOS.LINUX: ("deb", "appimage"),
    TargetOS.ANDROID: ("apk", "aab"),
    TargetOS.IOS: ("ipa",),
}


def is_supported_platform(framework: Framework, target_os: TargetOS) -> bool:
    """Check whether a framework can package for the given OS."""
    return target_os in SUPPORTED_PLATFORMS[framework]


@dataclass
class ArtifactInfo:
    """Information about one installer extracted from a CI bundle."""

    file_name: str
    file_type: str
    size_bytes: int
    storage_path: str
    download_url: str | None = None
    bundle_name: str | None = None


__all__ = [
    "OUTPUT_FORMATS",
    "SUPPORTED_PLATFORMS",
    "ArtifactInfo",
    "BuildStatus",
    "Framework",
    "SourceType",
    "StrategyKind",
    "TargetOS",
    "WrapperMode",
    "is_supported_platform",
]
