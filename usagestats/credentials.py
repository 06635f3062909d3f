"""
Credentials and identity cache management for usagewalk.

This module contains functions for loading Qumulo credentials and managing
the identity resolution cache used when walking a live cluster.
"""

import os
import sys
import time
from typing import Optional, Dict

import ujson

# Standalone credential management (same store as the qq CLI)
CREDENTIALS_FILENAME = '.qfsd_cred'

# Identity cache configuration
IDENTITY_CACHE_FILE = "usagewalk_resolved_identities"
IDENTITY_CACHE_TTL = 15 * 60  # 15 minutes in seconds


def credential_store_filename(creds_file_name: str = CREDENTIALS_FILENAME) -> str:
    """Get the path to the credentials store file."""
    if os.path.isabs(creds_file_name):
        return creds_file_name

    home = os.path.expanduser('~')
    if home == '~':
        home = os.environ.get('HOME')

    if home is None or home == '~':
        raise OSError('Could not find home directory for credentials store')

    path = os.path.join(home, creds_file_name)
    if os.path.isdir(path):
        raise OSError('Credentials store is a directory: %s' % path)
    return path


def get_credentials(path: str) -> Optional[str]:
    """
    Load credentials from file and return bearer token.
    Returns None if file doesn't exist, is empty, or holds no token.
    """
    if not os.path.isfile(path):
        return None

    try:
        with open(path) as store:
            if os.fstat(store.fileno()).st_size == 0:
                return None
            contents = ujson.load(store)
    except (ValueError, OSError):
        return None

    bearer_token = contents.get('bearer_token') if isinstance(contents, dict) else None
    if not isinstance(bearer_token, str):
        return None
    return bearer_token


def load_identity_cache(cache_file: str = IDENTITY_CACHE_FILE, verbose: bool = False) -> Dict:
    """Load identity cache from file, dropping expired entries."""
    cache = {}
    now = int(time.time())

    if not os.path.exists(cache_file):
        return cache

    try:
        with open(cache_file, "r") as f:
            cache_data = ujson.load(f)
    except (ValueError, OSError) as e:
        if verbose:
            print(f"[WARN] Failed to load identity cache: {e}", file=sys.stderr)
        return cache

    expired_count = 0
    for auth_id, entry in cache_data.items():
        if now - entry.get("timestamp", 0) > IDENTITY_CACHE_TTL:
            expired_count += 1
        else:
            cache[auth_id] = entry.get("identity", {})

    if verbose and cache:
        print(f"[INFO] Loaded {len(cache)} cached identities from {cache_file}", file=sys.stderr)
    if verbose and expired_count:
        print(f"[INFO] Ignored {expired_count} expired cache entries", file=sys.stderr)

    return cache


def save_identity_cache(identity_cache: Dict, cache_file: str = IDENTITY_CACHE_FILE, verbose: bool = False):
    """Save identity cache to file. Failures are reported, never raised."""
    now = int(time.time())
    cache_data = {
        auth_id: {"identity": identity, "timestamp": now}
        for auth_id, identity in identity_cache.items()
    }

    try:
        with open(cache_file, "w") as f:
            ujson.dump(cache_data, f, indent=2)
    except OSError as e:
        if verbose:
            print(f"[WARN] Failed to save identity cache: {e}", file=sys.stderr)
        return

    if verbose:
        print(f"[INFO] Saved {len(identity_cache)} identities to cache file", file=sys.stderr)
