"""
Async Qumulo API client and cluster traversal driver for usagewalk.

This module contains the AsyncQumuloClient class for reading directory
trees and identities from the Qumulo REST API, and QumuloTreeDriver, which
walks a live cluster and feeds a traversal sink.
"""

import asyncio
import ssl
import sys
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from .nodes import FsNode, NODE_KINDS, FILE, dispatch, to_count
from .utils import extract_pagination_token, format_owner_name


class AsyncQumuloClient:
    """Async Qumulo API client using aiohttp with optimized connection pooling."""

    def __init__(
        self,
        host: str,
        port: int,
        bearer_token: str,
        max_concurrent: int = 100,
        connector_limit: int = 100,
        identity_cache: Optional[Dict] = None,
        verbose: int = 0,
    ):
        self.host = host
        self.port = port
        self.base_url = f"https://{host}:{port}"
        self.bearer_token = bearer_token
        self.max_concurrent = max_concurrent
        self.verbose = verbose

        # Create SSL context that doesn't verify certificates (for self-signed certs)
        self.ssl_context = ssl.create_default_context()
        self.ssl_context.check_hostname = False
        self.ssl_context.verify_mode = ssl.CERT_NONE

        # Configure connection pooling
        self.connector_limit = connector_limit

        self.headers = {
            "accept": "application/json",
            "Authorization": f"Bearer {bearer_token}",
        }

        # Semaphore to limit concurrent operations, recreated per session
        self.semaphore = asyncio.Semaphore(max_concurrent)

        # Persistent identity cache for performance
        self.persistent_identity_cache = (
            identity_cache if identity_cache is not None else {}
        )
        self.cache_hits = 0
        self.cache_misses = 0
        self._inflight: Dict[str, asyncio.Future] = {}

    def create_session(self, connect_timeout: int = 30) -> aiohttp.ClientSession:
        """Create optimized ClientSession with connection pooling and timeouts."""
        # Each asyncio.run() gets its own loop, so loop-bound state starts fresh
        self.semaphore = asyncio.Semaphore(self.max_concurrent)
        self._inflight = {}

        connector = aiohttp.TCPConnector(
            limit=self.connector_limit,
            limit_per_host=self.connector_limit,
            ttl_dns_cache=300,
            ssl=self.ssl_context,
        )
        timeout = aiohttp.ClientTimeout(
            total=None,  # No total timeout (allow long walks)
            connect=connect_timeout,
            sock_connect=connect_timeout,
            sock_read=60,
        )
        return aiohttp.ClientSession(
            connector=connector,
            headers=self.headers,
            timeout=timeout
        )

    async def get_directory_page(
        self,
        session: aiohttp.ClientSession,
        path: str,
        limit: int = 1000,
        after_token: Optional[str] = None,
    ) -> dict:
        """
        Fetch a single page of directory contents from Qumulo API.

        Args:
            session: aiohttp ClientSession
            path: Directory path (must start with '/')
            limit: Maximum entries per page
            after_token: Pagination token from previous response

        Returns:
            Dictionary containing 'files' and 'paging' metadata
        """
        async with self.semaphore:
            if not path.startswith("/"):
                path = "/" + path

            encoded_path = quote(path, safe="")
            url = f"{self.base_url}/v1/files/{encoded_path}/entries/"

            params = {"limit": limit}
            if after_token:
                params["after"] = after_token

            async with session.get(
                url, params=params, ssl=self.ssl_context
            ) as response:
                response.raise_for_status()
                return await response.json()

    async def enumerate_directory_streaming(
        self, session: aiohttp.ClientSession, path: str, callback
    ) -> int:
        """
        Stream directory entries page by page without accumulating them.

        Args:
            session: aiohttp ClientSession
            path: Directory path
            callback: Async function that receives the list of entries of each page

        Returns:
            Total number of entries processed
        """
        total_entries = 0
        after_token = None

        while True:
            response = await self.get_directory_page(
                session, path, limit=1000, after_token=after_token
            )

            files = response.get("files", [])
            total_entries += len(files)

            if files:
                await callback(files)

            after_token = extract_pagination_token(response)
            if not after_token:
                break

        return total_entries

    async def get_file_attr(self, session: aiohttp.ClientSession, path: str) -> dict:
        """
        Get attributes of a single file or directory.

        Raises:
            aiohttp.ClientResponseError: Path missing or not readable
        """
        async with self.semaphore:
            if not path.startswith("/"):
                path = "/" + path

            encoded_path = quote(path, safe="")
            url = f"{self.base_url}/v1/files/{encoded_path}/info/attributes"

            async with session.get(url, ssl=self.ssl_context) as response:
                response.raise_for_status()
                return await response.json()

    async def resolve_identity(self, session: aiohttp.ClientSession, auth_id: str) -> Dict:
        """
        Resolve an auth_id using the find API.

        Returns:
            Dictionary containing identity information; unresolvable ids get a
            fallback entry with resolved=False
        """
        url = f"{self.base_url}/v1/identity/find"
        payload = {"auth_id": str(auth_id)}

        try:
            async with self.semaphore:
                async with session.post(
                    url, json=payload, ssl=self.ssl_context
                ) as response:
                    if response.status == 404:
                        return {
                            "domain": "UNKNOWN",
                            "auth_id": auth_id,
                            "name": f"Unknown (auth_id: {auth_id})",
                            "resolved": False,
                        }
                    response.raise_for_status()
                    result = await response.json()
                    result["resolved"] = True
                    return result
        except aiohttp.ClientError as e:
            return {
                "domain": "ERROR",
                "auth_id": auth_id,
                "name": f"Unknown (auth_id: {auth_id})",
                "error": str(e),
                "resolved": False,
            }

    async def get_identity(self, session: aiohttp.ClientSession, auth_id: str) -> Dict:
        """
        Resolve an auth_id once per run, sharing in-flight lookups between tasks.

        Checks the persistent cache first to avoid redundant API calls.
        """
        if auth_id in self.persistent_identity_cache:
            self.cache_hits += 1
            return self.persistent_identity_cache[auth_id]

        # No await between lookup and insert, so one task wins per auth_id
        future = self._inflight.get(auth_id)
        if future is None:
            self.cache_misses += 1
            future = asyncio.ensure_future(self._resolve_identity_with_expansion(session, auth_id))
            self._inflight[auth_id] = future
        return await future

    async def _resolve_identity_with_expansion(
        self, session: aiohttp.ClientSession, auth_id: str
    ) -> Dict:
        """
        Resolve an identity using expansion to find the best displayable name.

        A POSIX UID linked to an AD user (e.g. 2005 -> "mark") is reported
        under the AD name.
        """
        url = f"{self.base_url}/v1/identity/expand"
        payload = {"id": {"auth_id": str(auth_id)}}

        try:
            async with self.semaphore:
                async with session.post(
                    url, json=payload, ssl=self.ssl_context
                ) as response:
                    response.raise_for_status()
                    expand_result = await response.json()
        except aiohttp.ClientError:
            result = await self.resolve_identity(session, auth_id)
            self.persistent_identity_cache[auth_id] = result
            return result

        primary_identity = expand_result.get("id", {})
        best_identity = dict(primary_identity)
        best_identity["auth_id"] = auth_id
        best_identity["resolved"] = True

        if not primary_identity.get("name"):
            # Prefer AD identities over LOCAL over POSIX
            def identity_preference(identity):
                domain = identity.get("domain", "")
                if domain == "ACTIVE_DIRECTORY":
                    return 0
                elif domain == "LOCAL":
                    return 1
                elif domain in ["POSIX_USER", "POSIX_GROUP"]:
                    return 2
                else:
                    return 3

            for equiv_identity in sorted(expand_result.get("equivalent_ids", []), key=identity_preference):
                if equiv_identity.get("name"):
                    best_identity["name"] = equiv_identity["name"]
                    best_identity["display_domain"] = equiv_identity.get("domain")
                    break

        self.persistent_identity_cache[auth_id] = best_identity
        return best_identity

    async def resolve_name(self, session: aiohttp.ClientSession, auth_id: Optional[str]) -> Optional[str]:
        """Display name for an owner/group auth_id, None when the entry has none."""
        if not auth_id:
            return None
        return format_owner_name(await self.get_identity(session, str(auth_id)))


class QumuloTreeDriver:
    """
    Traversal driver over a live Qumulo cluster.

    Directories are enumerated concurrently (bounded by the client's
    semaphore); sink callbacks run on the event loop thread.
    """

    def __init__(self, client: AsyncQumuloClient, verbose: int = 0):
        self.client = client
        self.verbose = verbose

    def visit_parallel(self, sink, root_path: str):
        """
        Visit every node below root_path, root included.

        Raises:
            aiohttp.ClientError: Cluster unreachable or path not readable
        """
        asyncio.run(self.walk(sink, root_path))

    async def walk(self, sink, root_path: str):
        async with self.client.create_session() as session:
            root_entry = await self.client.get_file_attr(session, root_path)
            path, node = await self.entry_to_node(session, root_entry, root_path)
            dispatch(sink, path, node)
            if node.is_dir:
                await self._walk_directory(session, sink, path)

        if self.verbose:
            total = self.client.cache_hits + self.client.cache_misses
            if total:
                print(
                    f"[INFO] Identity cache: {self.client.cache_hits} hits, "
                    f"{self.client.cache_misses} misses",
                    file=sys.stderr,
                )

    async def _walk_directory(self, session: aiohttp.ClientSession, sink, dir_path: str):
        subdirs: List[str] = []

        async def process_page(entries):
            for entry in entries:
                if entry.get("type") not in NODE_KINDS:
                    if self.verbose:
                        print(f"\r[WARN] Skipping {entry.get('path')}: type {entry.get('type')}", file=sys.stderr)
                    continue
                path, node = await self.entry_to_node(session, entry)
                dispatch(sink, path, node)
                if node.is_dir:
                    subdirs.append(path)

        await self.client.enumerate_directory_streaming(session, dir_path, process_page)
        await asyncio.gather(
            *(self._walk_directory(session, sink, subdir) for subdir in subdirs)
        )

    async def entry_to_node(
        self, session: aiohttp.ClientSession, entry: dict, default_path: str = ""
    ) -> Tuple[str, FsNode]:
        """Convert a Qumulo entry into (path, FsNode) with resolved owner and group names."""
        path = entry.get("path") or default_path
        kind = entry.get("type")
        owner, group = await asyncio.gather(
            self.client.resolve_name(session, entry.get("owner")),
            self.client.resolve_name(session, entry.get("group")),
        )
        is_file = kind == FILE
        node = FsNode(
            kind,
            entry.get("name") or path.rstrip("/").rsplit("/", 1)[-1] or "/",
            owner,
            group,
            size=to_count(entry.get("size")) if is_file else 0,
            blocks=to_count(entry.get("datablocks")) if is_file else 0,
        )
        return path.rstrip("/") or "/", node

