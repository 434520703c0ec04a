"""GitHub Actions workflow synthesis.

This module handles:
- Deterministic workflow file names per framework and OS
- Rendering a workflow_dispatch workflow as YAML from a structured model

Dispatch inputs reach shell steps only through ``env:`` mappings. Expression
syntax appears in the rendered file only in ``env:``, ``run-name`` and
``with:`` values, never inside a ``run:`` script.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import yaml

from web2desk.types import Framework, TargetOS, is_supported_platform
from web2desk.workflows.scaffold import scaffold_script

logger = logging.getLogger(__name__)

RUNNERS: dict[TargetOS, str] = {
    TargetOS.WINDOWS: "windows-latest",
    TargetOS.MACOS: "macos-latest",
    TargetOS.LINUX: "ubuntu-latest",
    TargetOS.ANDROID: "ubuntu-latest",
    TargetOS.IOS: "macos-latest",
}

_FILE_PREFIX = {
    Framework.ELECTRON: "electron",
    Framework.TAURI: "tauri",
    Framework.CAPACITOR: "capacitor",
    Framework.REACT_NATIVE: "rn",
}

_TITLES = {
    Framework.ELECTRON: "Electron",
    Framework.TAURI: "Tauri",
    Framework.CAPACITOR: "Capacitor",
    Framework.REACT_NATIVE: "React Native",
}

_OS_TITLES = {
    TargetOS.WINDOWS: "Windows",
    TargetOS.MACOS: "macOS",
    TargetOS.LINUX: "Linux",
    TargetOS.ANDROID: "Android",
    TargetOS.IOS: "iOS",
}

ELECTRON_BUILDER_ARGS = {
    TargetOS.WINDOWS: "--win nsis msi --x64",
    TargetOS.MACOS: "--mac dmg --x64 --arm64",
    TargetOS.LINUX: "--linux deb AppImage --x64",
}

ELECTRON_ARTIFACTS = {
    TargetOS.WINDOWS: ["app-build/dist/*.exe", "app-build/dist/*.msi"],
    TargetOS.MACOS: ["app-build/dist/*.dmg"],
    TargetOS.LINUX: ["app-build/dist/*.deb", "app-build/dist/*.AppImage"],
}

TAURI_TARGETS = {
    TargetOS.WINDOWS: ["msi", "nsis"],
    TargetOS.MACOS: ["dmg"],
    TargetOS.LINUX: ["deb", "appimage"],
}

_TAURI_BUNDLE = "app-build/src-tauri/target/release/bundle"
TAURI_ARTIFACTS = {
    TargetOS.WINDOWS: [f"{_TAURI_BUNDLE}/msi/*.msi", f"{_TAURI_BUNDLE}/nsis/*.exe"],
    TargetOS.MACOS: [f"{_TAURI_BUNDLE}/dmg/*.dmg"],
    TargetOS.LINUX: [f"{_TAURI_BUNDLE}/deb/*.deb", f"{_TAURI_BUNDLE}/appimage/*.AppImage"],
}

TAURI_LINUX_PACKAGES = [
    "libgtk-3-dev",
    "libwebkit2gtk-4.1-dev",
    "libappindicator3-dev",
    "librsvg2-dev",
    "patchelf",
]

DISPATCH_INPUTS: dict[str, dict[str, Any]] = {
    "app_name": {"description": "Application name", "required": True},
    "source_url": {
        "description": "Source URL or GitHub repository",
        "required": False,
        "default": "",
    },
    "source_type": {
        "description": "Source type (url, github, zip)",
        "required": False,
        "default": "url",
    },
    "build_id": {"description": "Build identifier used for correlation", "required": True},
    "wrapper_mode": {
        "description": "Wrapper mode (webview or pwa)",
        "required": False,
        "default": "webview",
    },
    "project_config": {
        "description": "JSON project configuration",
        "required": False,
        "default": "{}",
    },
}

# Job environment; the only place dispatch inputs are expanded
INPUT_ENV = {
    "APP_NAME": "${{ inputs.app_name }}",
    "SOURCE_URL": "${{ inputs.source_url }}",
    "SOURCE_TYPE": "${{ inputs.source_type }}",
    "BUILD_ID": "${{ inputs.build_id }}",
    "WRAPPER_MODE": "${{ inputs.wrapper_mode }}",
    "PROJECT_CONFIG": "${{ inputs.project_config }}",
}

RUN_NAME = "Build ${{ inputs.app_name }} (${{ inputs.build_id }})"

NOTIFY_SCRIPT = """\
if [ -z "$BUILD_CALLBACK_URL" ]; then
  echo "No callback URL configured"
  exit 0
fi
STATUS=completed
if [ "$JOB_STATUS" != "success" ]; then STATUS=failed; fi
BODY="{\\"status\\": \\"$STATUS\\", \\"runId\\": $RUN_ID, \\"conclusion\\": \\"$JOB_STATUS\\"}"
curl -sS -X POST "$BUILD_CALLBACK_URL/builds/$BUILD_ID/callback" \\
  -H "Authorization: Bearer $BUILD_CALLBACK_TOKEN" \\
  -H "Content-Type: application/json" \\
  -d "$BODY" || true
"""


class UnsupportedPlatformError(ValueError):
    """Raised for a framework/OS pair no workflow exists for."""

    def __init__(self, framework: Framework, target_os: TargetOS) -> None:
        super().__init__(
            f"{_TITLES[framework]} does not support target OS '{target_os.value}'"
        )
        self.code = "validation"


class _WorkflowDumper(yaml.SafeDumper):
    """SafeDumper with indented sequences and literal blocks for scripts."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_WorkflowDumper.add_representer(str, _represent_str)


def workflow_file_name(framework: Framework | str, target_os: TargetOS | str) -> str:
    """Return the workflow file name for a framework and OS.

    Example: ``build-electron-windows.yml``, ``build-rn-android.yml``.
    """
    framework = Framework(framework)
    target_os = TargetOS(target_os)
    return f"build-{_FILE_PREFIX[framework]}-{target_os.value}.yml"


def _scaffold_step(
    framework: Framework,
    workdir: str | None,
    extra_env: dict[str, str] | None = None,
) -> dict[str, Any]:
    lines = []
    if workdir:
        lines.append(f"mkdir -p {workdir} && cd {workdir}")
    lines += [
        "cat > \"$RUNNER_TEMP/scaffold.cjs\" <<'SCAFFOLD'",
        scaffold_script(framework).strip("\n"),
        "SCAFFOLD",
        'node "$RUNNER_TEMP/scaffold.cjs"',
    ]
    step: dict[str, Any] = {
        "name": f"Prepare {_TITLES[framework]} wrapper",
        "run": "\n".join(lines) + "\n",
    }
    if extra_env:
        step["env"] = extra_env
    return step


def _setup_node() -> list[dict[str, Any]]:
    return [
        {"name": "Checkout", "uses": "actions/checkout@v4"},
        {
            "name": "Setup Node.js",
            "uses": "actions/setup-node@v4",
            "with": {"node-version": "20"},
        },
    ]


def _mobile_toolchain(target_os: TargetOS) -> list[dict[str, Any]]:
    if target_os == TargetOS.ANDROID:
        return [
            {
                "name": "Set up JDK 17",
                "uses": "actions/setup-java@v4",
                "with": {"java-version": "17", "distribution": "temurin"},
            },
            {"name": "Setup Android SDK", "uses": "android-actions/setup-android@v3"},
        ]
    return [
        {
            "name": "Select Xcode",
            "run": "sudo xcode-select -s /Applications/Xcode.app",
        }
    ]


def _gradle_steps(workdir: str) -> list[dict[str, Any]]:
    return [
        {
            "name": "Build APK",
            "working-directory": workdir,
            "run": "chmod +x gradlew\n./gradlew assembleRelease\n",
        },
        {
            "name": "Build AAB",
            "working-directory": workdir,
            "run": "./gradlew bundleRelease",
        },
    ]


def _ios_steps(project_dir: str, workspace: str, scheme: str) -> list[dict[str, Any]]:
    archive = (
        f"xcodebuild -workspace {workspace} -scheme {scheme} -configuration Release "
        "-archivePath build/App.xcarchive archive "
        'CODE_SIGN_IDENTITY="" CODE_SIGNING_REQUIRED=NO CODE_SIGNING_ALLOWED=NO\n'
    )
    package = (
        "mkdir -p build/Payload\n"
        f"cp -r build/App.xcarchive/Products/Applications/{scheme}.app build/Payload/\n"
        "cd build && zip -r App.ipa Payload\n"
    )
    pods_dir = f"{project_dir}/{workspace.rsplit('/', 1)[0]}"
    return [
        {"name": "Install CocoaPods", "working-directory": pods_dir, "run": "pod install"},
        {"name": "Build IPA (unsigned)", "working-directory": project_dir, "run": archive},
        {"name": "Create IPA", "working-directory": project_dir, "run": package},
    ]


def _electron_steps(target_os: TargetOS) -> tuple[list[dict[str, Any]], list[str]]:
    steps = _setup_node() + [
        _scaffold_step(
            Framework.ELECTRON,
            "app-build",
            {"BUILDER_ARGS": ELECTRON_BUILDER_ARGS[target_os]},
        ),
        {"name": "Install dependencies", "working-directory": "app-build", "run": "npm install"},
        {
            "name": "Build Electron app",
            "working-directory": "app-build",
            "run": "npm run build",
            "env": {"GH_TOKEN": "${{ secrets.GITHUB_TOKEN }}"},
        },
    ]
    return steps, ELECTRON_ARTIFACTS[target_os]


def _tauri_steps(target_os: TargetOS) -> tuple[list[dict[str, Any]], list[str]]:
    steps = _setup_node()
    if target_os == TargetOS.LINUX:
        steps.append(
            {
                "name": "Install system dependencies",
                "run": "sudo apt-get update\nsudo apt-get install -y "
                + " ".join(TAURI_LINUX_PACKAGES)
                + "\n",
            }
        )
    steps += [
        {"name": "Install Rust", "uses": "dtolnay/rust-toolchain@stable"},
        _scaffold_step(
            Framework.TAURI,
            "app-build",
            {"TAURI_TARGETS": json.dumps(TAURI_TARGETS[target_os])},
        ),
        {
            "name": "Build Tauri app",
            "working-directory": "app-build",
            "run": "npx @tauri-apps/cli@1 build",
        },
    ]
    return steps, TAURI_ARTIFACTS[target_os]


def _capacitor_steps(target_os: TargetOS) -> tuple[list[dict[str, Any]], list[str]]:
    platform = target_os.value
    steps = _setup_node() + _mobile_toolchain(target_os)
    steps += [
        _scaffold_step(Framework.CAPACITOR, "app-build", {"CAP_PLATFORM": platform}),
        {"name": "Install dependencies", "working-directory": "app-build", "run": "npm install"},
        {"name": "Add platform", "working-directory": "app-build", "run": f"npx cap add {platform}"},
        {"name": "Sync Capacitor", "working-directory": "app-build", "run": f"npx cap sync {platform}"},
    ]
    if target_os == TargetOS.ANDROID:
        steps += _gradle_steps("app-build/android")
        artifacts = [
            "app-build/android/app/build/outputs/apk/release/*.apk",
            "app-build/android/app/build/outputs/bundle/release/*.aab",
        ]
    else:
        steps += _ios_steps("app-build", "ios/App/App.xcworkspace", "App")
        artifacts = ["app-build/build/*.ipa"]
    return steps, artifacts


def _react_native_steps(target_os: TargetOS) -> tuple[list[dict[str, Any]], list[str]]:
    steps = _setup_node() + _mobile_toolchain(target_os)
    steps += [
        {
            "name": "Create React Native project",
            "run": "npx react-native init WebViewApp --version 0.73.0 --skip-git-init\n"
            "cd WebViewApp\n"
            "npm install react-native-webview\n",
        },
        _scaffold_step(Framework.REACT_NATIVE, "WebViewApp"),
    ]
    if target_os == TargetOS.ANDROID:
        steps += _gradle_steps("WebViewApp/android")
        artifacts = [
            "WebViewApp/android/app/build/outputs/apk/release/*.apk",
            "WebViewApp/android/app/build/outputs/bundle/release/*.aab",
        ]
    else:
        steps += _ios_steps("WebViewApp", "ios/WebViewApp.xcworkspace", "WebViewApp")
        artifacts = ["WebViewApp/build/*.ipa"]
    return steps, artifacts


_STEP_BUILDERS = {
    Framework.ELECTRON: _electron_steps,
    Framework.TAURI: _tauri_steps,
    Framework.CAPACITOR: _capacitor_steps,
    Framework.REACT_NATIVE: _react_native_steps,
}


def build_workflow(framework: Framework | str, target_os: TargetOS | str) -> dict[str, Any]:
    """Build the structured workflow model for a framework and OS.

    Raises:
        UnsupportedPlatformError: If the framework cannot target the OS.
    """
    framework = Framework(framework)
    target_os = TargetOS(target_os)
    if not is_supported_platform(framework, target_os):
        raise UnsupportedPlatformError(framework, target_os)

    steps, artifact_globs = _STEP_BUILDERS[framework](target_os)
    steps.append(
        {
            "name": "Upload installers",
            "uses": "actions/upload-artifact@v4",
            "with": {
                "name": f"{target_os.value}-installers",
                "path": "\n".join(artifact_globs) + "\n",
                "if-no-files-found": "error",
                "retention-days": 7,
            },
        }
    )
    steps.append(
        {
            "name": "Report build result",
            "if": "always()",
            "env": {
                "BUILD_CALLBACK_URL": "${{ vars.BUILD_CALLBACK_URL }}",
                "BUILD_CALLBACK_TOKEN": "${{ secrets.BUILD_CALLBACK_TOKEN }}",
                "JOB_STATUS": "${{ job.status }}",
                "RUN_ID": "${{ github.run_id }}",
            },
            "run": NOTIFY_SCRIPT,
        }
    )

    return {
        "name": f"Build {_TITLES[framework]} {_OS_TITLES[target_os]}",
        "run-name": RUN_NAME,
        "on": {"workflow_dispatch": {"inputs": DISPATCH_INPUTS}},
        "permissions": {"contents": "read"},
        "jobs": {
            "build": {
                "runs-on": RUNNERS[target_os],
                "timeout-minutes": 60,
                "defaults": {"run": {"shell": "bash"}},
                "env": INPUT_ENV,
                "steps": steps,
            }
        },
    }


def synthesize_workflow(framework: Framework | str, target_os: TargetOS | str) -> str:
    """Render the workflow for a framework and OS as YAML text.

    The output depends only on the framework and OS, so one file serves
    every build of that pair.

    Args:
        framework: Packaging framework.
        target_os: Target OS or mobile platform.

    Returns:
        Workflow YAML.

    Raises:
        UnsupportedPlatformError: If the framework cannot target the OS.
    """
    model = build_workflow(framework, target_os)
    text = yaml.dump(
        model,
        Dumper=_WorkflowDumper,
        sort_keys=False,
        allow_unicode=True,
        width=4096,
    )
    logger.debug("Rendered %s (%d bytes)", workflow_file_name(framework, target_os), len(text))
    return text


__all__ = [
    "DISPATCH_INPUTS",
    "RUNNERS",
    "UnsupportedPlatformError",
    "build_workflow",
    "synthesize_workflow",
    "workflow_file_name",
]
