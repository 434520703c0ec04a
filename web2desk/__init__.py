"""Web2Desk - package web apps as desktop and mobile installers.

This package turns a web app (URL, GitHub repository or uploaded archive)
into a wrapper project for Electron, Tauri, Capacitor or React Native, and
orchestrates remote CI workflows that compile real installers from it.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
