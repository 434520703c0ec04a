"""Wrapper project templates.

This module handles:
- App name sanitization and bundle identifiers
- The CI project configuration payload sent with workflow dispatches
- Rendering a buildable wrapper project per framework as a file mapping

Source files are rendered from the Jinja2 skeletons next to this module.
HTML skeletons are autoescaped, script values go through ``tojson`` and
TOML or shell values through the ``toml`` and ``shell`` filters. JSON files
are produced with json.dumps.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from web2desk.escaping import identifier, shell_quote, toml_string
from web2desk.types import Framework, TargetOS, WrapperMode
from web2desk.workflows.synth import TAURI_TARGETS

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")

ProjectFiles = dict[str, str]


def sanitize_app_name(app_name: str) -> str:
    """Turn an app name into a lowercase hyphenated slug.

    Returns:
        Slug of ``[a-z0-9-]`` characters, or ``app`` when nothing remains.
    """
    slug = _SLUG_INVALID.sub("-", app_name.lower()).strip("-")
    return slug or "app"


def bundle_identifier(app_name: str) -> str:
    """Return the reverse-DNS bundle identifier for an app name.

    The last segment contains letters and digits only and never starts with
    a digit, so the identifier is valid as an Android package name.
    """
    segment = sanitize_app_name(app_name).replace("-", "")
    if segment[0].isdigit():
        segment = f"app{segment}"
    return f"com.web2desk.{segment}"


@dataclass(frozen=True)
class ProjectParams:
    """Inputs for rendering a wrapper project."""

    app_name: str
    source_url: str
    framework: Framework
    target_os: TargetOS
    wrapper_mode: WrapperMode = WrapperMode.WEBVIEW

    @property
    def slug(self) -> str:
        return sanitize_app_name(self.app_name)

    @property
    def webview(self) -> bool:
        return self.wrapper_mode == WrapperMode.WEBVIEW


def build_project_config(
    app_name: str,
    source_url: str | None,
    framework: Framework,
    target_os: TargetOS,
    wrapper_mode: WrapperMode,
) -> dict[str, Any]:
    """Build the project configuration sent as the ``project_config`` input.

    Args:
        app_name: Display name.
        source_url: Source URL, empty for archive uploads.
        framework: Packaging framework.
        target_os: Target OS.
        wrapper_mode: webview or pwa.

    Returns:
        JSON-serializable mapping shaped like the framework's own config.
    """
    framework = Framework(framework)
    wrapper_mode = WrapperMode(wrapper_mode)
    url = source_url or ""
    slug = sanitize_app_name(app_name)
    app_id = bundle_identifier(app_name)
    wrapper = {"mode": wrapper_mode.value, "url": url}

    if framework == Framework.ELECTRON:
        return {
            "name": slug,
            "productName": app_name,
            "version": "1.0.0",
            "main": "main.js",
            "scripts": {"start": "electron .", "build": "electron-builder"},
            "build": {
                "appId": app_id,
                "productName": app_name,
                "directories": {"output": "dist"},
            },
            "wrapper": wrapper,
        }

    if framework == Framework.TAURI:
        return {
            "package": {"productName": app_name, "version": "1.0.0"},
            "tauri": {
                "bundle": {"identifier": app_id, "active": True, "targets": "all"},
                "windows": [
                    {"title": app_name, "width": 1200, "height": 800, "resizable": True}
                ],
            },
            "wrapper": wrapper,
        }

    if framework == Framework.CAPACITOR:
        config: dict[str, Any] = {"appId": app_id, "appName": app_name, "webDir": "www"}
        if wrapper_mode == WrapperMode.WEBVIEW and url:
            config["server"] = {"url": url, "cleartext": True}
        config["wrapper"] = wrapper
        return config

    return {"name": slug, "displayName": app_name, "wrapper": wrapper}


def _json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


SKELETON_DIR = Path(__file__).parent / "skeletons"

# HTML skeletons are autoescaped; other contexts use tojson, toml or shell
_env = Environment(
    loader=FileSystemLoader(SKELETON_DIR),
    autoescape=select_autoescape(enabled_extensions=("html.j2",), default_for_string=False),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)
_env.filters["toml"] = toml_string
_env.filters["shell"] = shell_quote

_ELECTRON_BUILD = {
    TargetOS.WINDOWS: ("build:win", "electron-builder --win nsis msi --x64"),
    TargetOS.MACOS: ("build:mac", "electron-builder --mac dmg zip --x64 --arm64"),
    TargetOS.LINUX: ("build:linux", "electron-builder --linux deb AppImage --x64"),
}


def _render(template_name: str, params: ProjectParams, **extra: Any) -> str:
    template = _env.get_template(template_name)
    return template.render(
        app_name=params.app_name,
        source_url=params.source_url,
        slug=params.slug,
        webview=params.webview,
        target=params.target_os.value,
        **extra,
    )


def _electron_files(params: ProjectParams) -> ProjectFiles:
    files: ProjectFiles = {}
    script_name, build_cmd = _ELECTRON_BUILD[params.target_os]

    files["package.json"] = _json(
        {
            "name": params.slug,
            "version": "1.0.0",
            "main": "main.js",
            "scripts": {"start": "electron .", script_name: build_cmd, "build": build_cmd},
            "devDependencies": {"electron": "^28.0.0", "electron-builder": "^24.0.0"},
            "build": {
                "appId": bundle_identifier(params.app_name),
                "productName": params.app_name,
                "directories": {"output": "dist"},
                "win": {"target": ["nsis", "msi"]},
                "mac": {"target": ["dmg", "zip"]},
                "linux": {"target": ["deb", "AppImage"]},
            },
        }
    )
    files["main.js"] = _render("electron_main.js.j2", params)
    if not params.webview:
        files["web/index.html"] = _render("placeholder.html.j2", params, folder="web")
    files["README.md"] = _render("electron_readme.md.j2", params)
    return files


def _tauri_files(params: ProjectParams) -> ProjectFiles:
    files: ProjectFiles = {}
    window: dict[str, Any] = {"title": params.app_name, "width": 1200, "height": 800}
    if params.webview and params.source_url:
        window["url"] = params.source_url

    files["package.json"] = _json(
        {
            "name": params.slug,
            "version": "1.0.0",
            "scripts": {"dev": "tauri dev", "build": "tauri build"},
            "devDependencies": {"@tauri-apps/cli": "^1.5.0"},
        }
    )
    files["src-tauri/tauri.conf.json"] = _json(
        {
            "build": {"distDir": "../src", "beforeBuildCommand": ""},
            "package": {"productName": params.app_name, "version": "1.0.0"},
            "tauri": {
                "bundle": {
                    "identifier": bundle_identifier(params.app_name),
                    "active": True,
                    "targets": TAURI_TARGETS[params.target_os],
                },
                "windows": [window],
                "security": {"csp": None},
            },
        }
    )
    files["src-tauri/Cargo.toml"] = _render("Cargo.toml.j2", params)
    files["src-tauri/src/main.rs"] = _render("tauri_main.rs.j2", params)
    files["src-tauri/build.rs"] = _render("tauri_build.rs.j2", params)
    files["src/index.html"] = _render("placeholder.html.j2", params, folder="src")
    files["README.md"] = _render("tauri_readme.md.j2", params)
    return files


def _capacitor_files(params: ProjectParams) -> ProjectFiles:
    files: ProjectFiles = {}
    platform = params.target_os.value

    files["package.json"] = _json(
        {
            "name": params.slug,
            "version": "1.0.0",
            "scripts": {"build": f"cap sync {platform}"},
            "dependencies": {
                "@capacitor/core": "^5.0.0",
                f"@capacitor/{platform}": "^5.0.0",
                "@capacitor/cli": "^5.0.0",
            },
        }
    )

    cap_config: dict[str, Any] = {
        "appId": bundle_identifier(params.app_name),
        "appName": params.app_name,
        "webDir": "www",
    }
    if params.webview and params.source_url:
        cap_config["server"] = {"url": params.source_url, "cleartext": True}
        files["www/index.html"] = _render("redirect.html.j2", params)
    else:
        files["www/index.html"] = _render("placeholder.html.j2", params, folder="www")
    files["capacitor.config.json"] = _json(cap_config)
    files["README.md"] = _render("capacitor_readme.md.j2", params)
    return files


def _react_native_files(params: ProjectParams) -> ProjectFiles:
    project = identifier(re.sub(r"[^A-Za-z0-9]", "", params.app_name), default="WebViewApp")
    return {
        "App.tsx": _render("App.tsx.j2", params),
        "README.md": _render("react_native_readme.md.j2", params, project=project),
    }


_GENERATORS = {
    Framework.ELECTRON: _electron_files,
    Framework.TAURI: _tauri_files,
    Framework.CAPACITOR: _capacitor_files,
    Framework.REACT_NATIVE: _react_native_files,
}


def generate_project_files(params: ProjectParams) -> ProjectFiles:
    """Render the wrapper project for the given parameters.

    Args:
        params: App name, source URL, framework, target OS and wrapper mode.

    Returns:
        Mapping of relative file path to file content.
    """
    return _GENERATORS[params.framework](params)


__all__ = [
    "ProjectFiles",
    "ProjectParams",
    "build_project_config",
    "bundle_identifier",
    "generate_project_files",
    "sanitize_app_name",
]
