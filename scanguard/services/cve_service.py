"""
CVE lookups against the NVD 2.0 API with a database-backed cache.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.orm import Session

from scanguard.core.config import settings
from scanguard.core.exceptions import CveLookupError, CveNotFoundError
from scanguard.models.cve_cache import CveCache
from scanguard.utils.timezone import as_utc, get_now

logger = logging.getLogger(__name__)

CVE_ID_RE = re.compile(r"^CVE-\d{4}-\d{4,}$", re.IGNORECASE)
MAX_AFFECTED_PRODUCTS = 50

# Newest CVSS version first
CVSS_METRIC_KEYS = ("cvssMetricV40", "cvssMetricV31", "cvssMetricV30", "cvssMetricV2")


def normalize_cve_id(cve_id: str) -> str:
    cve_id = (cve_id or "").strip().upper()
    if not CVE_ID_RE.match(cve_id):
        raise ValueError(f"Invalid CVE id '{cve_id}', expected CVE-YYYY-NNNN")
    return cve_id


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _cvss(metrics: Dict[str, Any]):
    for key in CVSS_METRIC_KEYS:
        entries = metrics.get(key) or []
        if not entries:
            continue
        entry = entries[0]
        data = entry.get("cvssData", {})
        severity = data.get("baseSeverity") or entry.get("baseSeverity")
        return data.get("baseScore"), severity.lower() if severity else None
    return None, None


def parse_nvd_cve(cve: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one NVD 2.0 'cve' object into cache columns."""
    description = next(
        (d.get("value") for d in cve.get("descriptions", []) if d.get("lang") == "en"),
        None,
    )
    score, severity = _cvss(cve.get("metrics", {}))

    cwe_ids: List[str] = []
    for weakness in cve.get("weaknesses", []):
        for desc in weakness.get("description", []):
            value = desc.get("value")
            if value and value.startswith("CWE-") and value not in cwe_ids:
                cwe_ids.append(value)

    products: List[str] = []
    for config in cve.get("configurations", []):
        for node in config.get("nodes", []):
            for match in node.get("cpeMatch", []):
                criteria = match.get("criteria")
                if criteria and criteria not in products:
                    products.append(criteria)

    return {
        "cve_id": cve.get("id"),
        "description": description,
        "cvss_score": score,
        "severity": severity,
        "cwe_ids": cwe_ids,
        "published_date": _parse_datetime(cve.get("published")),
        "modified_date": _parse_datetime(cve.get("lastModified")),
        "reference_links": [r["url"] for r in cve.get("references", []) if r.get("url")],
        "affected_products": products[:MAX_AFFECTED_PRODUCTS],
    }


class CveService:
    """Service for CVE details, cached in the cve_cache table."""

    def __init__(self, db: Session, session: Optional[requests.Session] = None):
        self.db = db
        self.session = session or requests.Session()

    def _is_fresh(self, entry: CveCache) -> bool:
        ttl = timedelta(hours=settings.CVE_CACHE_TTL_HOURS)
        fetched_at = as_utc(entry.fetched_at)
        return fetched_at is not None and get_now() - fetched_at < ttl

    def _fetch(self, cve_id: str) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        if settings.NVD_API_KEY:
            headers["apiKey"] = settings.NVD_API_KEY
        try:
            response = self.session.get(
                settings.NVD_API_URL,
                params={"cveId": cve_id},
                headers=headers,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise CveLookupError(f"Network error while querying NVD for {cve_id}: {e}") from e

        if response.status_code == 404:
            raise CveNotFoundError(cve_id)
        if response.status_code != 200:
            raise CveLookupError(f"NVD returned {response.status_code} for {cve_id}")

        try:
            payload = response.json()
        except ValueError as e:
            raise CveLookupError(f"NVD returned invalid JSON for {cve_id}") from e

        items = payload.get("vulnerabilities") or []
        if not items:
            raise CveNotFoundError(cve_id)
        return parse_nvd_cve(items[0].get("cve", {}))

    def get_cve(self, cve_id: str, refresh: bool = False) -> CveCache:
        """
        Return CVE details, from cache when fresh.

        A stale cache entry is still served when NVD is unreachable.
        """
        cve_id = normalize_cve_id(cve_id)
        entry = self.db.query(CveCache).filter(CveCache.cve_id == cve_id).first()
        if entry is not None and not refresh and self._is_fresh(entry):
            return entry

        try:
            data = self._fetch(cve_id)
        except CveLookupError as e:
            if entry is not None:
                logger.warning(f"Serving stale cache entry for {cve_id}: {e}")
                return entry
            raise

        data["cve_id"] = cve_id
        if entry is None:
            entry = CveCache(**data)
            self.db.add(entry)
        else:
            for key, value in data.items():
                setattr(entry, key, value)
        entry.fetched_at = get_now()
        self.db.commit()
        self.db.refresh(entry)
        logger.info(f"Cached {cve_id} from NVD (cvss={entry.cvss_score})")
        return entry
