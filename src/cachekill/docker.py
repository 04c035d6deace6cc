"""Docker disk usage via the Docker CLI."""

import json
import logging
import re
import subprocess

from cachekill.models import DockerStats

logger = logging.getLogger(__name__)

# Docker reports sizes in decimal units
SIZE_MULTIPLIERS = {
    "B": 1,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "TB": 1000**4,
    "K": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "T": 1000**4,
}

# "Type" column of docker system df -> DockerStats field
TYPE_FIELDS = {
    "images": "images_bytes",
    "containers": "containers_bytes",
    "local volumes": "volumes_bytes",
    "build cache": "build_cache_bytes",
}


def _parse_docker_size(size_str: str) -> int:
    """Parse a Docker size string such as '1.2GB' or '512kB (40%)' to bytes."""
    if not size_str:
        return 0

    match = re.match(r"([\d.]+)\s*([KMGT]?B?)", size_str.strip(), re.IGNORECASE)
    if not match:
        return 0

    try:
        num = float(match.group(1))
    except ValueError:
        return 0
    unit = match.group(2).upper() or "B"

    return int(round(num * SIZE_MULTIPLIERS.get(unit, 1)))


def is_docker_available() -> bool:
    """Check whether the Docker CLI is installed and the daemon answers."""
    try:
        check = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, PermissionError):
        return False
    return check.returncode == 0


def parse_system_df(output: str) -> DockerStats:
    """
    Build DockerStats from `docker system df --format '{{json .}}'` output.

    Args:
        output: One JSON object per line

    Returns:
        DockerStats marked available
    """
    stats = DockerStats(available=True)

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Ignoring unparseable docker df line: %s", line)
            continue
        if not isinstance(row, dict):
            continue

        field = TYPE_FIELDS.get(str(row.get("Type", "")).lower())
        if field is None:
            continue
        setattr(stats, field, _parse_docker_size(str(row.get("Size", ""))))
        stats.reclaimable_bytes += _parse_docker_size(str(row.get("Reclaimable", "")))

    return stats


def get_docker_stats() -> DockerStats:
    """
    Get Docker disk usage.

    Never raises; problems are reported in DockerStats.error.

    Returns:
        DockerStats (available=False when Docker cannot be queried)
    """
    if not is_docker_available():
        return DockerStats(error="Docker is not installed or not running")

    try:
        result = subprocess.run(
            ["docker", "system", "df", "--format", "{{json .}}"],
            capture_output=True,
            text=True,
            timeout=60,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning("docker system df failed: %s", e)
        return DockerStats(error=f"docker system df failed: {e}")

    if result.returncode != 0:
        return DockerStats(error=result.stderr.strip() or "docker system df failed")

    return parse_system_df(result.stdout)


def prune_docker(dry_run: bool = False) -> dict:
    """
    Run `docker system prune -f`.

    Args:
        dry_run: If True, report the command without running it

    Returns:
        Dict with success, command and output or error fields
    """
    cmd = ["docker", "system", "prune", "-f"]

    if dry_run:
        return {
            "success": True,
            "dry_run": True,
            "command": " ".join(cmd),
        }

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=300,
        )
    except subprocess.TimeoutExpired:
        return {"success": False, "command": " ".join(cmd), "error": "Command timed out"}
    except OSError as e:
        return {"success": False, "command": " ".join(cmd), "error": str(e)}

    if result.returncode == 0:
        return {
            "success": True,
            "command": " ".join(cmd),
            "output": result.stdout,
        }
    return {
        "success": False,
        "command": " ".join(cmd),
        "error": result.stderr.strip() or "Command failed",
    }
