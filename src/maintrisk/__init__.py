"""Maintainer activity inference for GitLab repositories."""

__version__ = "0.1.0"
