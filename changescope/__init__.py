"""changescope: resolve CI commit ranges and classify changed files."""

__version__ = "0.1.0"
