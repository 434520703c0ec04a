"""Tests for GitHub Actions workflow synthesis."""

import pytest
import yaml

from web2desk.types import SUPPORTED_PLATFORMS, Framework, TargetOS
from web2desk.workflows.synth import (
    DISPATCH_INPUTS,
    UnsupportedPlatformError,
    build_workflow,
    synthesize_workflow,
    workflow_file_name,
)

ALL_PAIRS = [(fw, os_) for fw, oses in SUPPORTED_PLATFORMS.items() for os_ in oses]


def _steps(doc):
    return doc["jobs"]["build"]["steps"]


class TestWorkflowFileName:
    """Tests for workflow_file_name."""

    def test_desktop(self):
        """Desktop frameworks use their own name."""
        assert workflow_file_name(Framework.ELECTRON, TargetOS.WINDOWS) == "build-electron-windows.yml"
        assert workflow_file_name("tauri", "linux") == "build-tauri-linux.yml"

    def test_react_native_prefix(self):
        """React Native uses the short rn prefix."""
        assert workflow_file_name(Framework.REACT_NATIVE, TargetOS.IOS) == "build-rn-ios.yml"

    def test_unknown_framework(self):
        """Unknown values are rejected by the enum."""
        with pytest.raises(ValueError):
            workflow_file_name("flutter", "android")


class TestSynthesizeWorkflow:
    """Tests for synthesize_workflow."""

    @pytest.mark.parametrize("framework,target_os", ALL_PAIRS)
    def test_parses_as_dispatch_workflow(self, framework, target_os):
        """Every supported pair renders a valid workflow_dispatch workflow."""
        doc = yaml.safe_load(synthesize_workflow(framework, target_os))

        assert doc["on"]["workflow_dispatch"]["inputs"].keys() == DISPATCH_INPUTS.keys()
        assert "${{ inputs.build_id }}" in doc["run-name"]
        assert doc["jobs"]["build"]["env"]["BUILD_ID"] == "${{ inputs.build_id }}"
        upload = [s for s in _steps(doc) if s.get("uses", "").startswith("actions/upload-artifact")]
        assert upload[0]["with"]["name"] == f"{target_os.value}-installers"

    @pytest.mark.parametrize("framework,target_os", ALL_PAIRS)
    def test_no_expressions_in_scripts(self, framework, target_os):
        """Shell scripts read inputs from the environment only."""
        doc = yaml.safe_load(synthesize_workflow(framework, target_os))

        for step in _steps(doc):
            assert "${{" not in step.get("run", ""), step["name"]

    def test_deterministic(self):
        """Output depends only on framework and OS."""
        first = synthesize_workflow(Framework.CAPACITOR, TargetOS.ANDROID)
        assert synthesize_workflow("capacitor", "android") == first

    def test_unsupported_pair(self):
        """Desktop frameworks cannot target mobile and vice versa."""
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            synthesize_workflow(Framework.ELECTRON, TargetOS.ANDROID)
        assert exc_info.value.code == "validation"
        assert "android" in str(exc_info.value)

        with pytest.raises(UnsupportedPlatformError):
            synthesize_workflow(Framework.REACT_NATIVE, TargetOS.WINDOWS)

    def test_runners(self):
        """Runner images follow the target OS."""
        assert build_workflow("tauri", "macos")["jobs"]["build"]["runs-on"] == "macos-latest"
        assert build_workflow("capacitor", "ios")["jobs"]["build"]["runs-on"] == "macos-latest"
        assert build_workflow("electron", "linux")["jobs"]["build"]["runs-on"] == "ubuntu-latest"

    def test_tauri_linux_installs_system_packages(self):
        """Only the Linux Tauri build installs webkit dependencies."""
        linux = [s["name"] for s in _steps(build_workflow("tauri", "linux"))]
        windows = [s["name"] for s in _steps(build_workflow("tauri", "windows"))]

        assert "Install system dependencies" in linux
        assert "Install system dependencies" not in windows

    def test_electron_mac_uploads_dmg(self):
        """The macOS Electron build uploads disk images."""
        upload = _steps(build_workflow("electron", "macos"))[-2]
        assert upload["with"]["path"].strip() == "app-build/dist/*.dmg"

    def test_android_builds_apk_and_aab(self):
        """Android builds produce both APK and AAB."""
        names = [s["name"] for s in _steps(build_workflow("capacitor", "android"))]
        assert "Build APK" in names
        assert "Build AAB" in names

    def test_final_step_reports_result(self):
        """The last step always posts the job result."""
        last = _steps(build_workflow("electron", "windows"))[-1]
        assert last["if"] == "always()"
        assert last["env"]["JOB_STATUS"] == "${{ job.status }}"

    def test_final_step_sends_conclusion(self):
        """The posted body carries the job status as the conclusion."""
        last = _steps(build_workflow("tauri", "linux"))[-1]
        assert '\\"conclusion\\": \\"$JOB_STATUS\\"' in last["run"]
        assert '-d "$BODY"' in last["run"]
