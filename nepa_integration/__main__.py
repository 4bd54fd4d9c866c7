"""Main entry point when executing nepa_integration as a package.

This allows running the package using python -m nepa_integration.
"""

from nepa_integration.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
