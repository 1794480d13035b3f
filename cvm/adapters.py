"""Default registry and source-hosting clients used by the CLI.

- :class:`PyPIClient`: PyPI JSON API for existence checks, ``uv build`` +
  ``uv publish`` for uploads.
- :class:`CratesIoClient`: crates.io API for existence checks,
  ``cargo publish`` for uploads.
- :class:`GitHubCliHost`: ``git`` for tags and branches, ``gh`` for
  releases and pull requests.

Failures are mapped onto the publish error taxonomy: rate limits, server
errors, timeouts and connection problems are transient; anything else
is a rejection.
"""

from __future__ import annotations

import re
import subprocess
import tempfile
from pathlib import Path

import httpx

from . import __version__, shell
from .errors import CvmError, PublishError, RejectedPublishError, TransientPublishError
from .logging import get_logger

logger = get_logger(__name__)

USER_AGENT = f"cvm/{__version__}"

_TRANSIENT_STATUS = {408, 425, 429, 500, 502, 503, 504}
_TRANSIENT_OUTPUT = re.compile(
    r"(?:\b(?:http|status(?: code)?|responded with)[: ]+(?:429|5\d\d)\b)"
    r"|\b(?:429|5\d\d) (?:too many requests|internal server error|bad gateway|service unavailable|gateway timeout)\b"
    r"|timed out|timeout|connection reset|connection refused|temporarily unavailable|too many requests",
    re.IGNORECASE,
)


def _exists(client: httpx.Client, url: str, *, timeout: float) -> bool:
    try:
        response = client.get(url, timeout=timeout)
    except httpx.TransportError as exc:
        raise TransientPublishError(f"GET {url}: {exc}") from exc
    if response.status_code == 200:
        return True
    if response.status_code == 404:
        return False
    if response.status_code in _TRANSIENT_STATUS:
        raise TransientPublishError(f"GET {url}: HTTP {response.status_code}")
    raise RejectedPublishError(f"GET {url}: HTTP {response.status_code}")


def _run_upload(*args: str, cwd: Path, timeout: float, name: str, version: str) -> None:
    """Run an upload command and classify its failure."""
    try:
        result = shell.run(*args, cwd=cwd, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise TransientPublishError(
            f"{args[0]} timed out after {timeout}s", package=name, version=version
        ) from exc
    if result.returncode == 0:
        return
    output = (result.stderr or result.stdout).strip()
    error = output.splitlines()[-1] if output else f"exit code {result.returncode}"
    if _TRANSIENT_OUTPUT.search(output):
        raise TransientPublishError(error, package=name, version=version)
    raise RejectedPublishError(error, package=name, version=version)


class PyPIClient:
    """Publish Python packages to PyPI (or a compatible index)."""

    def __init__(
        self,
        *,
        base_url: str = "https://pypi.org",
        publish_url: str | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._publish_url = publish_url
        self._http = http or httpx.Client(headers={"User-Agent": USER_AGENT})

    def exists(self, name: str, version: str, *, timeout: float) -> bool:
        return _exists(self._http, f"{self._base_url}/pypi/{name}/{version}/json", timeout=timeout)

    def publish(self, name: str, version: str, manifest_path: Path, *, timeout: float) -> None:
        package_dir = manifest_path.parent
        with tempfile.TemporaryDirectory(prefix="cvm-dist-") as tmp:
            out = Path(tmp)
            logger.info("uv_build", package=name, version=version)
            build = shell.run("uv", "build", "--out-dir", str(out), str(package_dir), timeout=timeout)
            if build.returncode != 0:
                raise RejectedPublishError(
                    f"uv build failed: {build.stderr.strip()}", package=name, version=version
                )
            files = sorted(str(p) for p in out.iterdir() if p.suffix in (".whl", ".gz"))
            cmd = ["uv", "publish"]
            if self._publish_url:
                cmd += ["--publish-url", self._publish_url]
            logger.info("uv_publish", package=name, version=version, files=len(files))
            _run_upload(*cmd, *files, cwd=package_dir, timeout=timeout, name=name, version=version)


class CratesIoClient:
    """Publish crates to crates.io."""

    def __init__(self, *, base_url: str = "https://crates.io", http: httpx.Client | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http or httpx.Client(headers={"User-Agent": USER_AGENT})

    def exists(self, name: str, version: str, *, timeout: float) -> bool:
        return _exists(self._http, f"{self._base_url}/api/v1/crates/{name}/{version}", timeout=timeout)

    def publish(self, name: str, version: str, manifest_path: Path, *, timeout: float) -> None:
        logger.info("cargo_publish", package=name, version=version)
        _run_upload(
            "cargo",
            "publish",
            "--manifest-path",
            str(manifest_path),
            cwd=manifest_path.parent,
            timeout=timeout,
            name=name,
            version=version,
        )


class GitHubCliHost:
    """Tags, releases and pull requests through ``git`` and ``gh``."""

    def __init__(self, root: Path, *, remote: str = "origin") -> None:
        self.root = root
        self.remote = remote

    def create_tag(self, name: str) -> None:
        try:
            shell.git("tag", name, cwd=self.root)
            shell.git("push", self.remote, name, cwd=self.root)
        except subprocess.CalledProcessError as exc:
            raise PublishError(f"git failed for tag {name}: {(exc.stderr or '').strip()}") from exc

    def create_release(self, tag: str, notes: str) -> str:
        try:
            return shell.gh("release", "create", tag, "--title", tag, "--notes", notes, cwd=self.root)
        except subprocess.CalledProcessError as exc:
            raise PublishError(f"gh release create {tag} failed: {(exc.stderr or '').strip()}") from exc

    def create_pull_request(self, title: str, labels: list[str], branch: str) -> str:
        try:
            shell.git("checkout", "-B", branch, cwd=self.root)
            shell.git("add", "-A", cwd=self.root)
            shell.git("commit", "-m", title, cwd=self.root)
            shell.git("push", "--force", "-u", self.remote, branch, cwd=self.root)
            args = ["pr", "create", "--title", title, "--body", title, "--head", branch]
            for label in labels:
                args += ["--label", label]
            return shell.gh(*args, cwd=self.root)
        except subprocess.CalledProcessError as exc:
            raise CvmError(
                f"Could not open the version pull request: {(exc.stderr or '').strip()}",
                hint="Check that 'gh auth status' succeeds and the branch can be pushed.",
            ) from exc
