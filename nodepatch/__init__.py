"""nodepatch: node-level patching of React/JSX source files."""

__version__ = "0.3.0"
