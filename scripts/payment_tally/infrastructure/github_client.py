from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator

import httpx

from payment_tally.domain.entities import NO_ASSIGNEE, Comment, Issue, Repository
from payment_tally.domain.errors import FetchError
from payment_tally.domain.interfaces import IIssueSource

log = logging.getLogger(__name__)

GITHUB_API_URL= "https://api.github.com/graphql"
PAGE_SIZE= 100
RATE_LIMIT_SLEEP= 60
MAX_RETRIES= 5

REPOSITORIES_QUERY = """
query ($org: String!, $first: Int!, $cursor: String) {
  organization(login: $org) {
    repositories(first: $first, after: $cursor) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        name
        isArchived
        defaultBranchRef {
          target {
            ... on Commit {
              history(first: 1) {
                nodes { committedDate }
              }
            }
          }
        }
      }
    }
  }
}
"""

ISSUES_QUERY = """
query ($org: String!, $repoName: String!, $first: Int!, $cursor: String, $since: DateTime) {
  repository(owner: $org, name: $repoName) {
    issues(first: $first, after: $cursor, filterBy: { since: $since, states: [CLOSED, OPEN] }) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        number
        author { login }
        assignees(first: 1) {
          nodes { login }
        }
        comments(first: 100) {
          pageInfo {
            hasNextPage
            endCursor
          }
          nodes {
            body
            author { login }
          }
        }
      }
    }
  }
}
"""

COMMENTS_QUERY = """
query ($org: String!, $repoName: String!, $number: Int!, $first: Int!, $cursor: String) {
  repository(owner: $org, name: $repoName) {
    issue(number: $number) {
      comments(first: $first, after: $cursor) {
        pageInfo {
          hasNextPage
          endCursor
        }
        nodes {
          body
          author { login }
        }
      }
    }
  }
}
"""


class RateLimitError(Exception):
    """Raised when GitHub explicitly returns a RATE_LIMITED error."""
    pass


class GitHubClient(IIssueSource):
    """
    Concrete implementation of IIssueSource for GitHub's GraphQL API.

    The constructor receives an httpx.AsyncClient (injected) rather than
    creating one internally. This lets callers control the client lifecycle
    and lets tests pass a client backed by httpx.MockTransport.
    """

    def __init__(self, token: str, client: httpx.AsyncClient, rate_limit_sleep: float = RATE_LIMIT_SLEEP) -> None:
        self._client = client
        self._rate_limit_sleep = rate_limit_sleep
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        }

    # Anti-Corruption Layer
    @staticmethod
    def _parse_datetime(value: str | None) -> datetime | None:
        """Convert GitHub's ISO datetime string to Python datetime."""
        if not value:
            return None
        return datetime.fromisoformat(value.replace("Z", "+00:00"))

    @staticmethod
    def _login(actor: dict | None) -> str | None:
        # deleted accounts come back as null ("ghost")
        return actor.get("login") if actor else None

    def _parse_repository(self, node: dict) -> Repository | None:
        """
        Translate a raw repository node into our Repository entity.

        GitHub sends:                                     We store as:
          "isArchived"                                 →  is_archived
          defaultBranchRef.target.history[0].committedDate → last_commit_date
        """
        try:
            history = (((node.get("defaultBranchRef") or {}).get("target") or {}).get("history") or {}).get("nodes") or []
            return Repository(
                name             = node["name"],
                is_archived      = node.get("isArchived", False),
                last_commit_date = self._parse_datetime(history[0]["committedDate"]) if history else None,
            )
        except (KeyError, TypeError) as exc:
            log.debug("Skipping malformed repository node %s: %s", node, exc)
            return None

    def _parse_comment(self, node: dict) -> Comment:
        return Comment(body=node.get("body") or "", author_login=self._login(node.get("author")))

    def _parse_issue(self, node: dict, repo_name: str) -> Issue | None:
        try:
            assignees = node.get("assignees", {}).get("nodes") or []
            comments  = node.get("comments", {}).get("nodes") or []
            return Issue(
                number         = node["number"],
                author_login   = self._login(node.get("author")),
                assignee_login = (assignees and self._login(assignees[0])) or NO_ASSIGNEE,
                comments       = tuple(self._parse_comment(c) for c in comments),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            log.warning("Skipping malformed issue node | %s#%s | %s", repo_name, node.get("number"), exc)
            return None

    async def _query(self, query: str, variables: dict) -> dict:
        """
        POST one GraphQL query with retry logic and return its `data`.

        Raises FetchError once retries are exhausted or when GitHub answers
        with errors and no data at all.
        """
        for attempt in range(MAX_RETRIES):
            try:
                response = await self._client.post(
                    GITHUB_API_URL,
                    headers=self._headers,
                    json={"query": query, "variables": variables},
                    timeout=30.0,
                )
                response.raise_for_status()
                payload = response.json()

                # Check for GraphQL-level errors (different from HTTP errors)
                if "errors" in payload:
                    for err in payload["errors"]:
                        if err.get("type") == "RATE_LIMITED":
                            raise RateLimitError()
                    if not payload.get("data"):
                        raise FetchError(f"GraphQL errors: {payload['errors']}")
                    log.warning("GraphQL errors for %s: %s", variables, payload["errors"])

                return payload["data"]

            except RateLimitError:
                log.info("Rate limited - sleeping %ds before retry …", self._rate_limit_sleep)
                await asyncio.sleep(self._rate_limit_sleep)

            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                wait = 2 ** (attempt + 1)   # exponential backoff: 2s, 4s, 8s, 16s, 32s
                log.warning("HTTP error attempt %d/%d: %s - retrying in %ds", attempt + 1, MAX_RETRIES, exc, wait)
                await asyncio.sleep(wait)

        raise FetchError(f"Exhausted {MAX_RETRIES} retries for {variables}")

    # IIssueSource implementation
    async def list_repositories(self, org: str) -> AsyncIterator[Repository]:
        cursor = None
        while True:
            data = await self._query(REPOSITORIES_QUERY, {"org": org, "first": PAGE_SIZE, "cursor": cursor})
            if not data.get("organization"):
                raise FetchError(f"Organization {org!r} not found")
            connection = data["organization"]["repositories"]

            for node in connection["nodes"]:
                if (repository := self._parse_repository(node)) is not None:
                    yield repository

            page_info = connection["pageInfo"]
            if not page_info["hasNextPage"]:
                break
            cursor = page_info["endCursor"]

    async def _remaining_comments(self, org: str, repo_name: str, number: int, cursor: str) -> AsyncIterator[Comment]:
        """Page through the comments of one issue that did not fit in the issues query."""
        while True:
            variables = {"org": org, "repoName": repo_name, "number": number, "first": PAGE_SIZE, "cursor": cursor}
            data  = await self._query(COMMENTS_QUERY, variables)
            issue = (data.get("repository") or {}).get("issue")
            if not issue:
                log.warning("Could not page comments | %s#%d | issue not returned, keeping what was read", repo_name, number)
                return
            connection = issue["comments"]

            for node in connection["nodes"]:
                yield self._parse_comment(node)

            page_info = connection["pageInfo"]
            if not page_info["hasNextPage"]:
                return
            cursor = page_info["endCursor"]

    async def list_issues_with_comments(self, org: str, repo_name: str, since: str) -> AsyncIterator[Issue]:
        cursor = None
        while True:
            variables = {"org": org, "repoName": repo_name, "first": PAGE_SIZE, "cursor": cursor, "since": since}
            data = await self._query(ISSUES_QUERY, variables)
            if not data.get("repository"):
                raise FetchError(f"Repository {org}/{repo_name} not found")
            connection = data["repository"]["issues"]

            for node in connection["nodes"]:
                issue = self._parse_issue(node, repo_name)
                if issue is None:
                    continue
                comments_page = (node.get("comments") or {}).get("pageInfo") or {}
                if comments_page.get("hasNextPage"):
                    log.debug("Paging comments | %s#%d | after %d", repo_name, issue.number, len(issue.comments))
                    more = [c async for c in self._remaining_comments(org, repo_name, issue.number, comments_page["endCursor"])]
                    issue = replace(issue, comments=issue.comments + tuple(more))
                yield issue

            page_info = connection["pageInfo"]
            if not page_info["hasNextPage"]:
                break
            cursor = page_info["endCursor"]
