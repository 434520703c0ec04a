"""Static Node.js scaffold scripts embedded in synthesized workflows.

Each script writes a minimal wrapper project into the current directory.
They read dispatch inputs from environment variables only (``APP_NAME``,
``SOURCE_URL``, ``WRAPPER_MODE``, ``PROJECT_CONFIG``) and never contain
expression syntax, so their text is identical for every build.
"""

from web2desk.types import Framework

PRELUDE = r"""const fs = require('fs');
const path = require('path');

const env = process.env;
const appName = env.APP_NAME || 'App';
const sourceUrl = env.SOURCE_URL || '';
const webview = (env.WRAPPER_MODE || 'webview') === 'webview';
const config = JSON.parse(env.PROJECT_CONFIG || '{}');
delete config.wrapper;
const slug = appName.toLowerCase().replace(/[^a-z0-9]+/g, '-').replace(/^-+|-+$/g, '') || 'app';
const appId = 'com.web2desk.' + (slug.replace(/-/g, '').replace(/^(\d)/, 'app$1') || 'app');

function write(file, text) {
  fs.mkdirSync(path.dirname(file), { recursive: true });
  fs.writeFileSync(file, text);
}

function escapeHtml(text) {
  const map = { '&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#x27;' };
  return text.replace(/[&<>"']/g, (c) => map[c]);
}

function jsLiteral(text) {
  return JSON.stringify(text).replace(/<\//g, '<\\/');
}

function placeholderPage() {
  return [
    '<!DOCTYPE html>',
    '<html lang="en">',
    '<head>',
    '  <meta charset="UTF-8">',
    '  <meta name="viewport" content="width=device-width, initial-scale=1.0">',
    '  <title>' + escapeHtml(appName) + '</title>',
    '</head>',
    '<body>',
    '  <h1>' + escapeHtml(appName) + '</h1>',
    '</body>',
    '</html>',
    '',
  ].join('\n');
}

function redirectPage() {
  return [
    '<!DOCTYPE html>',
    '<html>',
    '<head><meta charset="utf-8"><title>' + escapeHtml(appName) + '</title></head>',
    '<body><script>window.location.replace(' + jsLiteral(sourceUrl) + ');</script></body>',
    '</html>',
    '',
  ].join('\n');
}
"""

ELECTRON = r"""
const pkg = Object.assign({ name: slug, productName: appName, version: '1.0.0' }, config);
pkg.main = 'main.js';
pkg.scripts = { start: 'electron .', build: 'electron-builder ' + env.BUILDER_ARGS };
pkg.devDependencies = { electron: '^28.0.0', 'electron-builder': '^24.0.0' };
pkg.build = Object.assign(
  { appId: appId, productName: appName, directories: { output: 'dist' } },
  pkg.build || {},
);
write('package.json', JSON.stringify(pkg, null, 2));

const load = webview
  ? 'win.loadURL(' + jsLiteral(sourceUrl) + ');'
  : "win.loadFile(path.join(__dirname, 'web', 'index.html'));";
write('main.js', [
  "const { app, BrowserWindow } = require('electron');",
  "const path = require('path');",
  '',
  'function createWindow() {',
  '  const win = new BrowserWindow({',
  '    width: 1200,',
  '    height: 800,',
  '    webPreferences: { nodeIntegration: false, contextIsolation: true },',
  '  });',
  '  ' + load,
  '  win.setMenuBarVisibility(false);',
  '}',
  '',
  'app.whenReady().then(createWindow);',
  "app.on('window-all-closed', () => { if (process.platform !== 'darwin') app.quit(); });",
  '',
].join('\n'));
if (!webview) {
  write('web/index.html', placeholderPage());
}
"""

TAURI = r"""
const mainWindow = { title: appName, width: 1200, height: 800, resizable: true };
if (webview && sourceUrl) {
  mainWindow.url = sourceUrl;
}
const conf = {
  build: { distDir: '../src', beforeBuildCommand: '' },
  package: { productName: appName, version: '1.0.0' },
  tauri: {
    bundle: { identifier: appId, active: true, targets: JSON.parse(env.TAURI_TARGETS) },
    windows: [mainWindow],
    security: { csp: null },
  },
};
write('package.json', JSON.stringify({ name: slug, version: '1.0.0', private: true }, null, 2));
write('src/index.html', placeholderPage());
write('src-tauri/tauri.conf.json', JSON.stringify(conf, null, 2));
write('src-tauri/Cargo.toml', [
  '[package]',
  'name = "web2desk-app"',
  'version = "1.0.0"',
  'edition = "2021"',
  '',
  '[dependencies]',
  'tauri = { version = "1", features = ["shell-open"] }',
  'serde = { version = "1", features = ["derive"] }',
  'serde_json = "1"',
  '',
  '[build-dependencies]',
  'tauri-build = { version = "1", features = [] }',
  '',
].join('\n'));
write('src-tauri/src/main.rs', [
  '#![cfg_attr(not(debug_assertions), windows_subsystem = "windows")]',
  '',
  'fn main() {',
  '    tauri::Builder::default()',
  '        .run(tauri::generate_context!())',
  '        .expect("error while running tauri application");',
  '}',
  '',
].join('\n'));
write('src-tauri/build.rs', 'fn main() {\n    tauri_build::build()\n}\n');
"""

CAPACITOR = r"""
const platform = env.CAP_PLATFORM;
const capConfig = Object.assign({ appId: appId, appName: appName, webDir: 'www' }, config);
if (webview && sourceUrl) {
  capConfig.server = { url: sourceUrl, cleartext: true };
}
write('capacitor.config.json', JSON.stringify(capConfig, null, 2));

const deps = { '@capacitor/core': '^5.0.0', '@capacitor/cli': '^5.0.0' };
deps['@capacitor/' + platform] = '^5.0.0';
write('package.json', JSON.stringify({ name: slug, version: '1.0.0', private: true, dependencies: deps }, null, 2));
write('www/index.html', webview && sourceUrl ? redirectPage() : placeholderPage());
"""

REACT_NATIVE = r"""
write('App.tsx', [
  "import React from 'react';",
  "import { SafeAreaView, StatusBar, StyleSheet } from 'react-native';",
  "import { WebView } from 'react-native-webview';",
  '',
  'const App = () => (',
  '  <SafeAreaView style={styles.container}>',
  '    <StatusBar barStyle="dark-content" />',
  '    <WebView',
  '      source={{ uri: ' + jsLiteral(sourceUrl) + ' }}',
  '      style={styles.webview}',
  '      javaScriptEnabled',
  '      domStorageEnabled',
  '      startInLoadingState',
  '    />',
  '  </SafeAreaView>',
  ');',
  '',
  'const styles = StyleSheet.create({',
  '  container: { flex: 1 },',
  '  webview: { flex: 1 },',
  '});',
  '',
  'export default App;',
  '',
].join('\n'));
"""

_BODIES = {
    Framework.ELECTRON: ELECTRON,
    Framework.TAURI: TAURI,
    Framework.CAPACITOR: CAPACITOR,
    Framework.REACT_NATIVE: REACT_NATIVE,
}


def scaffold_script(framework: Framework) -> str:
    """Return the complete scaffold script for a framework."""
    return PRELUDE + _BODIES[framework]


__all__ = ["scaffold_script"]
