"""
Repository fetching through the GitHub REST API.
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import quote

import requests

from scanguard.core.config import settings
from scanguard.core.exceptions import RepositoryFetchError

logger = logging.getLogger(__name__)

USER_AGENT = "ECU-ScanGuard/1.0"

RELEVANT_EXTENSIONS = (
    ".c", ".h", ".cpp", ".hpp", ".cc", ".cxx",
    ".py", ".pyw",
    ".js", ".ts", ".jsx", ".tsx",
    ".java", ".kt",
    ".go", ".rs", ".rb", ".php",
    ".arxml", ".xml", ".json", ".yaml", ".yml",
    ".sh", ".bash",
    ".sql",
)

GITHUB_URL_RE = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s]+?)(?:\.git)?/?$", re.IGNORECASE)


@dataclass
class RepositoryFile:
    """One fetched source file."""
    path: str
    content: str
    size: int


@dataclass
class RepositorySnapshot:
    """Files fetched from one branch of a repository."""
    owner: str
    name: str
    branch: str
    files: List[RepositoryFile]

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


def parse_repository_url(url: str) -> Tuple[str, str]:
    """Split a GitHub URL (https or ssh form) into (owner, repo)."""
    match = GITHUB_URL_RE.search((url or "").strip())
    if not match:
        raise RepositoryFetchError(f"Not a GitHub repository URL: {url}")
    return match.group(1), match.group(2)


def repository_display_name(url: str) -> str:
    """Short "owner/repo" label for a repository URL, falling back to the raw URL."""
    try:
        owner, name = parse_repository_url(url)
    except RepositoryFetchError:
        return url
    return f"{owner}/{name}"


def is_relevant_path(path: str) -> bool:
    return path.lower().endswith(RELEVANT_EXTENSIONS)


class RepositoryService:
    """Fetches a bounded set of source files from a GitHub repository."""

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()
        self.api_url = settings.GITHUB_API_URL.rstrip("/")
        self.timeout = settings.HTTP_TIMEOUT_SECONDS
        self.max_files = settings.REPOSITORY_MAX_FILES

    def _headers(self, access_token: Optional[str]) -> dict:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        token = access_token or settings.GITHUB_TOKEN
        if token:
            headers["Authorization"] = f"token {token}"
        return headers

    def _get_json(self, url: str, headers: dict, what: str):
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise RepositoryFetchError(f"Network error while fetching {what}: {e}") from e
        if response.status_code != 200:
            raise RepositoryFetchError(
                f"Failed to fetch {what}: {response.status_code} - {response.text[:200]}"
            )
        return response.json()

    def fetch(
        self,
        url: str,
        branch: Optional[str] = None,
        provider: str = "github",
        access_token: Optional[str] = None,
    ) -> RepositorySnapshot:
        """
        Fetch up to REPOSITORY_MAX_FILES relevant files.

        Individual file failures are logged and skipped; failing to read the
        repository itself or its tree raises RepositoryFetchError.
        """
        if provider != "github":
            raise RepositoryFetchError(f"Repository provider '{provider}' is not supported yet")

        owner, name = parse_repository_url(url)
        headers = self._headers(access_token)
        repo_url = f"{self.api_url}/repos/{owner}/{name}"

        repo_info = self._get_json(repo_url, headers, f"repository {owner}/{name}")
        ref = branch or repo_info.get("default_branch") or "main"
        logger.info(f"Fetching repository {owner}/{name} at {ref}")

        tree = self._get_json(
            f"{repo_url}/git/trees/{quote(ref, safe='')}?recursive=1",
            headers,
            f"tree of {owner}/{name}@{ref}",
        )
        blobs = [
            item for item in tree.get("tree", [])
            if item.get("type") == "blob" and is_relevant_path(item.get("path", ""))
        ][: self.max_files]
        logger.info(f"Found {len(blobs)} relevant files in {owner}/{name}")

        files: List[RepositoryFile] = []
        for item in blobs:
            path = item["path"]
            try:
                data = self._get_json(
                    f"{repo_url}/contents/{quote(path)}?ref={quote(ref, safe='')}",
                    headers,
                    path,
                )
                if data.get("encoding") != "base64" or not data.get("content"):
                    continue
                raw = base64.b64decode(data["content"].replace("\n", ""))
                files.append(RepositoryFile(
                    path=path,
                    content=raw.decode("utf-8", errors="replace"),
                    size=item.get("size") or len(raw),
                ))
            except (RepositoryFetchError, binascii.Error, ValueError) as e:
                logger.warning(f"Skipping {path} from {owner}/{name}: {e}")

        return RepositorySnapshot(owner=owner, name=name, branch=ref, files=files)
