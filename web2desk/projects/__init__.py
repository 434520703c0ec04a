"""Wrapper project generation module.

This module handles:
- Rendering per-framework wrapper project files
- Packing generated projects into downloadable zips
"""
