"""Report source backed by a PostgREST-style REST API (e.g. Supabase)."""

import logging
from datetime import datetime, timedelta

import httpx

from roadheat.exceptions import ReportSourceUnavailable
from roadheat.schemas.heatmap import ConditionReport, HeatmapQuery
from roadheat.sources.base import ReportSource

logger = logging.getLogger(__name__)

REPORT_COLUMNS = (
    "id,latitude,longitude,condition_type,severity,description,"
    "activity_context,upvotes,submitted_at"
)


class HttpReportSource(ReportSource):
    """Fetch reports from a ``condition_reports`` REST resource."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        lookback_days: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._lookback_days = lookback_days
        self._transport = transport

    def _get_headers(self) -> dict[str, str]:
        """Get HTTP headers for API requests."""
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def build_params(self, query: HeatmapQuery, now: datetime) -> list[tuple[str, str]]:
        """Build PostgREST filter parameters for the bounding box."""
        params = [
            ("select", REPORT_COLUMNS),
            ("latitude", f"gte.{query.south}"),
            ("latitude", f"lte.{query.north}"),
            ("longitude", f"gte.{query.west}"),
            ("longitude", f"lte.{query.east}"),
        ]
        if self._lookback_days:
            cutoff = now - timedelta(days=self._lookback_days)
            params.append(("submitted_at", f"gte.{cutoff.isoformat()}"))
        params.append(("order", "submitted_at.asc,id.asc"))
        return params

    @staticmethod
    def _parse_row(row: dict) -> ConditionReport:
        """Parse a row; accepts flat latitude/longitude or a {lat, lng} location."""
        data = dict(row)
        location = data.pop("location", None)
        if isinstance(location, dict):
            data.setdefault("latitude", location.get("lat"))
            data.setdefault("longitude", location.get("lng"))
        if data.get("upvotes") is None:
            data.pop("upvotes", None)
        return ConditionReport(**data)

    async def fetch_reports(self, query: HeatmapQuery, now: datetime) -> list[ConditionReport]:
        """Fetch reports inside the query's bounding box."""
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._get_headers(),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(
                    "/condition_reports", params=self.build_params(query, now)
                )
                response.raise_for_status()
                rows = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Report API returned {e.response.status_code} from {self.base_url}")
            raise ReportSourceUnavailable(
                f"Report API returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Failed to reach report API at {self.base_url}: {e}")
            raise ReportSourceUnavailable(f"Report API unreachable: {e}") from e
        except ValueError as e:
            raise ReportSourceUnavailable(f"Report API returned invalid JSON: {e}") from e

        if not isinstance(rows, list):
            raise ReportSourceUnavailable("Report API returned an unexpected payload")

        # A malformed remote row fails this fetch only (ValidationError is a ValueError)
        try:
            reports = [self._parse_row(row) for row in rows]
        except (ValueError, TypeError) as e:
            logger.error(f"Report API returned a malformed row: {e}")
            raise ReportSourceUnavailable(f"Report API returned a malformed row: {e}") from e

        logger.debug(f"Fetched {len(reports)} reports for zoom {query.zoom}")
        return reports
