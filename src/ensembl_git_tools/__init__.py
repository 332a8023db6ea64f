"""
Ensembl Git Tools

Command-line helpers that drive git and the GitHub API across the
groups of repositories that make up Ensembl.
"""

__version__ = "0.1.0"
__author__ = "Ensembl Developers"
__description__ = "Multi-repository git and GitHub workflow tooling for Ensembl"
