"""
resource_utils.py

Shared helpers for the gene mapper resources:
- Word lists bundled under agr_gene_mapper/resources (stopwords, greek letters, ...)
- Index / model locations that may point to a remote http(s) file; those are downloaded
  once into a local cache directory with a resilient GET (retry with backoff)
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

import requests

logger = logging.getLogger(__name__)

RESOURCE_DIR = Path(__file__).resolve().parent.parent / "agr_gene_mapper" / "resources"

DOWNLOAD_CACHE_DIR = os.getenv("GENE_MAPPING_CACHE_DIR", ".gene_mapping_cache")
DOWNLOAD_RETRIES = int(os.getenv("GENE_MAPPING_DOWNLOAD_RETRIES", "3"))
DOWNLOAD_TIMEOUT = float(os.getenv("GENE_MAPPING_DOWNLOAD_TIMEOUT", "60"))


def read_resource_lines(name: str, resource_dir: Optional[Path] = None, skip_comments: bool = True) -> Optional[List[str]]:
    """
    Return the stripped, non-empty lines of a bundled resource or None if the
    resource does not exist. Lines starting with '##' are comments.
    """
    path = Path(resource_dir or RESOURCE_DIR) / name
    if not path.is_file():
        return None
    lines = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or (skip_comments and line.startswith("##")):
                continue
            lines.append(line)
    return lines


def is_remote_location(location: str) -> bool:
    return urlparse(str(location)).scheme in ("http", "https")


def _download_cache_path(url: str) -> Path:
    p = Path(DOWNLOAD_CACHE_DIR)
    p.mkdir(parents=True, exist_ok=True)
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()
    name = Path(urlparse(url).path).name or "resource"
    return p / f"{digest[:12]}_{name}"


def download_file(url: str, retries: int = DOWNLOAD_RETRIES, timeout: float = DOWNLOAD_TIMEOUT,
                  sleep: float = 1.0) -> Path:
    """GET with exponential backoff on throttling and server errors; returns the local file path."""
    target = _download_cache_path(url)
    if target.exists():
        logger.debug("Using cached download %s for %s", target, url)
        return target
    safe_url = urlparse(url)._replace(query="").geturl()
    attempt = 0
    while True:
        attempt += 1
        try:
            response = requests.get(url, timeout=timeout, stream=True)
            if response.status_code in (429, 500, 502, 503, 504) and attempt <= retries:
                logger.warning("Download of %s returned %s, retrying", safe_url, response.status_code)
                time.sleep(sleep * attempt)
                continue
            response.raise_for_status()
            tmp = target.with_suffix(target.suffix + ".part")
            with open(tmp, "wb") as out:
                for chunk in response.iter_content(chunk_size=1 << 20):
                    out.write(chunk)
            tmp.replace(target)
            logger.info("Downloaded %s to %s", safe_url, target)
            return target
        except requests.exceptions.ConnectionError:
            if attempt <= retries:
                time.sleep(sleep * attempt)
                continue
            raise


def resolve_location(location: str) -> Path:
    """Local path for an index or model location, downloading remote files first."""
    if is_remote_location(location):
        return download_file(location)
    return Path(location)
