"""cvm: stage, version and publish the packages of a multi-package workspace."""

from importlib.metadata import version as pkg_version

__version__ = pkg_version("cvm")
