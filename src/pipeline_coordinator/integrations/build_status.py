"""Remote build status for feature branches (Azure DevOps Builds REST API)."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from ..errors import BuildStatusError

logger = logging.getLogger(__name__)

API_VERSION = "7.0"


@dataclass
class BuildInfo:
    """One pipeline run as reported by the build service."""

    build_id: int
    status: str
    result: Optional[str]
    definition: str
    branch: str
    url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BuildInfo":
        links = data.get("_links") or {}
        return cls(
            build_id=int(data.get("id", 0)),
            status=data.get("status", "unknown"),
            result=data.get("result"),
            definition=(data.get("definition") or {}).get("name", "unknown"),
            branch=data.get("sourceBranch", ""),
            url=(links.get("web") or {}).get("href"),
        )


class BuildStatusClient:
    """Query the latest builds of a branch."""

    def __init__(
        self,
        organization_url: str,
        project: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        self.organization_url = organization_url.rstrip("/")
        self.project = project
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def latest_builds(self, branch: str, count: int = 10) -> List[BuildInfo]:
        """Return the ``count`` most recent builds of ``branch``, newest first.

        Raises:
            BuildStatusError: If the request fails or the response is not JSON
        """
        url = f"{self.organization_url}/{self.project}/_apis/build/builds"
        params = {
            "branchName": f"refs/heads/{branch}",
            "$top": count,
            "api-version": API_VERSION,
        }
        auth = ("", self.token) if self.token else None

        try:
            response = self.session.get(
                url, params=params, auth=auth, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise BuildStatusError(f"Build service unreachable: {e}") from e

        if response.status_code == 401:
            raise BuildStatusError("Build service rejected the access token")
        if response.status_code != 200:
            raise BuildStatusError(f"Build service API error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise BuildStatusError("Build service returned a non-JSON response") from e

        builds = [BuildInfo.from_api(item) for item in payload.get("value", [])]
        logger.info(f"Found {len(builds)} builds for {branch}")
        return builds
