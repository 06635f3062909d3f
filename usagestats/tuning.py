"""
Auto-tuning module for usagewalk.

Detects system resources and derives default concurrency settings for the
snapshot visitor (worker threads) and the cluster walker (HTTP requests).
Profile is saved to 'tuning-profile' with --tune.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import ujson

# Profile version for future compatibility
PROFILE_VERSION = 1
PROFILE_FILENAME = "tuning-profile"

PROFILE_NAMES = ("conservative", "balanced", "aggressive")

# Cluster/network is the bottleneck for HTTP walks; callbacks are cheap, so
# more threads than a small multiple of the CPU count only adds contention
PROFILE_CAPS = {
    'conservative': {'max_workers': 4, 'max_concurrent': 150, 'connector_limit': 150},
    'balanced': {'max_workers': 16, 'max_concurrent': 300, 'connector_limit': 300},
    'aggressive': {'max_workers': 64, 'max_concurrent': 500, 'connector_limit': 500},
}

PROFILE_MULTIPLIERS = {
    'conservative': 0.8,
    'balanced': 1.0,
    'aggressive': 1.5,
}

DEFAULT_SETTINGS = {'max_workers': 8, 'max_concurrent': 100, 'connector_limit': 100}


def detect_cpu_count() -> int:
    """Number of CPUs usable by this process."""
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0)) or 1
    return os.cpu_count() or 1


def detect_file_descriptor_limit() -> int:
    """
    Detect the file descriptor limit for the current process.

    Returns:
        Soft limit on file descriptors (int)
    """
    # Unix/Linux/macOS
    try:
        import resource
        soft_limit, _ = resource.getrlimit(resource.RLIMIT_NOFILE)
        return soft_limit
    except (ImportError, ValueError):
        pass

    # Windows doesn't have the same fd limit concept
    if sys.platform == 'win32':
        return 8192

    return 256


def calculate_recommended_settings(cpu_count: int, fd_limit: int, profile: str = 'balanced') -> Dict[str, int]:
    """
    Calculate recommended settings based on system characteristics.

    Args:
        cpu_count: Usable CPUs
        fd_limit: File descriptor limit
        profile: Tuning profile ('conservative', 'balanced', 'aggressive')

    Returns:
        Dict with recommended max_workers, max_concurrent, connector_limit
    """
    mult = PROFILE_MULTIPLIERS.get(profile, 1.0)
    caps = PROFILE_CAPS.get(profile, PROFILE_CAPS['balanced'])

    recommended = {
        'max_workers': max(2, int(cpu_count * 2 * mult)),
        'max_concurrent': max(25, int(cpu_count * 50 * mult)),
        'connector_limit': max(25, int(cpu_count * 50 * mult)),
    }
    for key in recommended:
        recommended[key] = min(recommended[key], caps[key])

    # Leave file descriptor headroom for other operations
    fd_cap = max(25, fd_limit - 50)
    recommended['max_concurrent'] = min(recommended['max_concurrent'], fd_cap)
    recommended['connector_limit'] = min(recommended['connector_limit'], fd_cap)

    return recommended


def get_profile_path() -> Path:
    """Path to the tuning profile, next to usagewalk.py."""
    return Path(__file__).parent.parent / PROFILE_FILENAME


def load_tuning_profile(profile_path: Optional[Path] = None) -> Optional[Dict]:
    """
    Load the tuning profile from disk.

    Returns:
        Profile dict if exists and valid, None otherwise
    """
    profile_path = profile_path or get_profile_path()

    if not profile_path.exists():
        return None

    try:
        with open(profile_path, 'r') as f:
            profile = ujson.load(f)
    except (ValueError, OSError):
        return None

    if not isinstance(profile, dict) or profile.get('version') != PROFILE_VERSION:
        return None
    if not all(key in profile for key in ('platform', 'recommended', 'profile')):
        return None

    return profile


def save_tuning_profile(profile: Dict, profile_path: Optional[Path] = None) -> bool:
    """
    Save the tuning profile to disk.

    Returns:
        True if saved successfully, False otherwise
    """
    profile_path = profile_path or get_profile_path()

    try:
        with open(profile_path, 'w') as f:
            ujson.dump(profile, f, indent=2)
        return True
    except OSError:
        return False


def generate_tuning_profile(profile_name: str = 'balanced') -> Dict:
    """Generate a new tuning profile based on the current system."""
    cpu_count = detect_cpu_count()
    fd_limit = detect_file_descriptor_limit()

    return {
        'version': PROFILE_VERSION,
        'created': datetime.now(timezone.utc).isoformat(),
        'platform': {
            'os': sys.platform,
            'cpu_count': cpu_count,
            'fd_limit': fd_limit,
        },
        'recommended': calculate_recommended_settings(cpu_count, fd_limit, profile_name),
        'profile': profile_name,
    }


def effective_settings(profile: Optional[Dict]) -> Dict[str, int]:
    """Defaults overlaid with a loaded profile's recommendations."""
    settings = dict(DEFAULT_SETTINGS)
    if profile:
        for key, value in profile.get('recommended', {}).items():
            if key in settings and isinstance(value, int) and value > 0:
                settings[key] = value
    return settings


def format_profile_summary(profile: Dict) -> str:
    """Human readable summary of a tuning profile."""
    platform = profile.get('platform', {})
    rec = profile.get('recommended', {})
    lines = [
        f"Tuning profile: {profile.get('profile', 'unknown')}",
        f"  Platform:        {platform.get('os', '?')} ({platform.get('cpu_count', '?')} CPUs, "
        f"fd limit {platform.get('fd_limit', '?')})",
        f"  max_workers:     {rec.get('max_workers', '?')}",
        f"  max_concurrent:  {rec.get('max_concurrent', '?')}",
        f"  connector_limit: {rec.get('connector_limit', '?')}",
    ]
    return "\n".join(lines)
